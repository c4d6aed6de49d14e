"""SLA turnaround metrics derived from lead milestone timestamps."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.numbers import round_half_up
from ..db.session import transaction
from ..repositories import leads as leads_repo
from ..schemas import analytics as schemas

SECONDS_PER_HOUR = 3600


def _hours(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def _overdue_cutoff(now: datetime) -> datetime:
    return now - timedelta(hours=settings.overdue_repair_hours)


async def get_turnaround_metrics(
    session: AsyncSession,
    *,
    days_back: int = 30,
    now: datetime | None = None,
) -> schemas.TurnaroundMetrics:
    """Average, fastest and slowest repair times plus first-response time."""

    now = now or datetime.now(timezone.utc)
    async with transaction(session, "load turnaround metrics"):
        repairs = await leads_repo.list_completed_repairs(session, created_since=now - timedelta(days=days_back))
        overdue = await leads_repo.count_overdue_repairs(session, started_before=_overdue_cutoff(now))

    repair_hours = [_hours(lead.repair_started_at, lead.repair_completed_at) for lead in repairs]
    response_hours = [
        hours
        for hours in (
            _hours(lead.created_at, lead.first_contact_at) for lead in repairs if lead.first_contact_at
        )
        if hours >= 0
    ]

    metrics = schemas.TurnaroundMetrics(repairs_completed=len(repair_hours), overdue_repairs=overdue)
    if repair_hours:
        metrics.avg_repair_time = round_half_up(sum(repair_hours) / len(repair_hours))
        metrics.fastest_repair_time = round_half_up(min(repair_hours), 1)
        metrics.slowest_repair_time = round_half_up(max(repair_hours), 1)
    if response_hours:
        metrics.avg_response_time = round_half_up(sum(response_hours) / len(response_hours), 1)
    return metrics


async def get_overdue_repairs(
    session: AsyncSession,
    *,
    now: datetime | None = None,
) -> list[schemas.OverdueRepair]:
    """Repairs running longer than the configured SLA, oldest first."""

    now = now or datetime.now(timezone.utc)
    async with transaction(session, "load overdue repairs"):
        leads = await leads_repo.list_overdue_repairs(session, started_before=_overdue_cutoff(now))

    return [
        schemas.OverdueRepair(
            id=lead.id,
            customer_name=lead.customer_name,
            device_type=lead.device_type,
            device_model=lead.device_model,
            repair_started_at=lead.repair_started_at,
            hours_in_repair=round_half_up(_hours(lead.repair_started_at, now), 1),
        )
        for lead in leads
    ]
