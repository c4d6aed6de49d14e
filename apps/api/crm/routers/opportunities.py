"""Sales pipeline endpoints."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import leads as leads_schema
from ..schemas import opportunities as schemas
from ..services import opportunities as opportunities_service

router = APIRouter()


def _range(start: datetime | None, end: datetime | None, field: schemas.DateField) -> schemas.DateRange | None:
    if start is None and end is None:
        return None
    if start is None or end is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Both from and to are required")
    return _required_range(start, end, field)


def _required_range(start: datetime, end: datetime, field: schemas.DateField) -> schemas.DateRange:
    try:
        return schemas.DateRange(start=start, end=end, field=field)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.get("", response_model=list[schemas.Opportunity])
async def list_opportunities(
    stage: schemas.OpportunityStage | None = None,
    from_: datetime | None = Query(default=None, alias="from"),
    to: datetime | None = None,
    date_field: schemas.DateField = schemas.DateField.CREATED_AT,
    session: AsyncSession = Depends(get_session),
) -> list[schemas.Opportunity]:
    """Return pipeline leads labelled with their stage."""

    return await opportunities_service.get_opportunities(session, stage, _range(from_, to, date_field))


@router.get("/stats", response_model=schemas.OpportunityStats)
async def opportunity_stats(
    from_: datetime | None = Query(default=None, alias="from"),
    to: datetime | None = None,
    date_field: schemas.DateField = schemas.DateField.CREATED_AT,
    session: AsyncSession = Depends(get_session),
) -> schemas.OpportunityStats:
    return await opportunities_service.get_opportunity_stats(session, _range(from_, to, date_field))


@router.get("/compare", response_model=schemas.ComparativeStats)
async def comparative_stats(
    from_: datetime = Query(alias="from"),
    to: datetime = Query(),
    previous_from: datetime | None = None,
    previous_to: datetime | None = None,
    date_field: schemas.DateField = schemas.DateField.CREATED_AT,
    session: AsyncSession = Depends(get_session),
) -> schemas.ComparativeStats:
    """Compare a period with an explicit or the immediately preceding one."""

    current = _required_range(from_, to, date_field)
    previous = _range(previous_from, previous_to, date_field) or opportunities_service.get_previous_period(current)
    return await opportunities_service.get_comparative_stats(session, current, previous)


@router.get("/previous-period", response_model=schemas.DateRange)
async def previous_period(
    from_: datetime = Query(alias="from"),
    to: datetime = Query(),
    date_field: schemas.DateField = schemas.DateField.CREATED_AT,
) -> schemas.DateRange:
    return opportunities_service.get_previous_period(_required_range(from_, to, date_field))


@router.get("/pipeline", response_model=list[schemas.PipelineMonth])
async def pipeline_metrics(
    months: int = Query(default=6, ge=1, le=24),
    session: AsyncSession = Depends(get_session),
) -> list[schemas.PipelineMonth]:
    return await opportunities_service.get_pipeline_metrics(session, months=months)


@router.post("/{lead_id}/stage", response_model=leads_schema.StatusChangeResponse)
async def move_stage(
    lead_id: str,
    payload: schemas.StageMoveRequest,
    session: AsyncSession = Depends(get_session),
) -> leads_schema.StatusChangeResponse:
    result = await opportunities_service.update_opportunity_stage(
        session, lead_id, payload.stage, actor_id=payload.actor_id
    )
    return leads_schema.StatusChangeResponse(converted=result.converted, lead=result.lead)
