"""Turnaround and activity reporting endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import analytics as schemas
from ..schemas.leads import ActivityEntryRead
from ..services import activity as activity_service
from ..services import analytics as analytics_service

router = APIRouter()


@router.get("/turnaround", response_model=schemas.TurnaroundMetrics)
async def turnaround(
    days_back: int = Query(default=30, ge=1, le=365),
    session: AsyncSession = Depends(get_session),
) -> schemas.TurnaroundMetrics:
    return await analytics_service.get_turnaround_metrics(session, days_back=days_back)


@router.get("/overdue-repairs", response_model=list[schemas.OverdueRepair])
async def overdue_repairs(session: AsyncSession = Depends(get_session)) -> list[schemas.OverdueRepair]:
    return await analytics_service.get_overdue_repairs(session)


@router.get("/activity", response_model=list[ActivityEntryRead])
async def recent_activity(
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> list[ActivityEntryRead]:
    return await activity_service.list_recent_activity(session, limit)
