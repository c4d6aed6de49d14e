"""Actionable-lead badge: authoritative count and live websocket feed."""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.websockets import WebSocketState
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import SessionLocal, get_session
from ..models.staff import StaffRole
from ..schemas.notifications import CountResponse
from ..services import counter as counter_service
from ..services.changes import broker as change_broker

logger = logging.getLogger(__name__)

router = APIRouter()


async def fetch_viewer_count(predicate: counter_service.ActionablePredicate) -> int:
    """Count with a short-lived session; the websocket outlives any request session."""

    async with SessionLocal() as session:
        return await counter_service.fetch_count(session, predicate)


@router.get("/count", response_model=CountResponse)
async def actionable_count(
    staff_id: str,
    role: StaffRole,
    session: AsyncSession = Depends(get_session),
) -> CountResponse:
    """Return how many leads currently need the viewer's attention."""

    predicate = counter_service.ActionablePredicate.for_viewer(staff_id, role)
    return CountResponse(count=await counter_service.fetch_count(session, predicate))


@router.websocket("/ws")
async def live_count(websocket: WebSocket) -> None:
    """Push the viewer's badge count whenever it changes.

    Clients may send ``{"type": "refresh"}`` to force an authoritative recount.
    """

    staff_id = websocket.query_params.get("staff_id")
    try:
        role = StaffRole(websocket.query_params.get("role", ""))
    except ValueError:
        role = None
    if not staff_id or role is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def send_count(count: int) -> None:
        await websocket.send_json({"type": "count", "count": count})

    counter = counter_service.LiveCounter(
        counter_service.ActionablePredicate.for_viewer(staff_id, role),
        fetch_viewer_count,
        on_change=send_count,
    )

    # Subscribe before the initial fetch so no change slips between the two.
    async with change_broker.subscribe() as subscription:
        await counter.mount()
        pump = asyncio.create_task(counter.run(subscription))
        listener = asyncio.create_task(_serve_refreshes(websocket, counter))
        try:
            done, _ = await asyncio.wait({pump, listener}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (pump, listener):
                task.cancel()
            await asyncio.gather(pump, listener, return_exceptions=True)

    failures = [task.exception() for task in done if not task.cancelled() and task.exception() is not None]
    if failures:
        logger.error("Live counter for %s stopped", staff_id, exc_info=failures[0])
        if websocket.application_state is WebSocketState.CONNECTED:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)


async def _serve_refreshes(websocket: WebSocket, counter: counter_service.LiveCounter) -> None:
    """Handle client messages until the client disconnects."""

    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "refresh":
                await counter.refresh()
    except WebSocketDisconnect:
        logger.debug("Live counter for %s disconnected", counter.predicate.staff_id)
