"""Sales pipeline projection over lead statuses.

An opportunity is never stored. It is a lead in one of the pipeline statuses,
labelled with the stage from ``STAGE_BY_STATUS`` at read time.
"""
from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.numbers import round_int
from ..db.session import transaction
from ..models.activity import ActivityAction, ActivityEntity
from ..models.lead import Lead, LeadStatus
from ..repositories import leads as leads_repo
from ..schemas import opportunities as schemas
from . import audit
from . import leads as leads_service

STAGE_BY_STATUS: dict[LeadStatus, schemas.OpportunityStage] = {
    LeadStatus.INTERESTED: schemas.OpportunityStage.QUALIFIED,
    LeadStatus.QUOTED: schemas.OpportunityStage.PICKUP,
    LeadStatus.WON: schemas.OpportunityStage.CLOSED_WON,
    LeadStatus.LOST: schemas.OpportunityStage.CLOSED_LOST,
}
STATUS_BY_STAGE: dict[schemas.OpportunityStage, LeadStatus] = {
    stage: status for status, stage in STAGE_BY_STATUS.items()
}
PIPELINE_STATUSES: tuple[LeadStatus, ...] = tuple(STAGE_BY_STATUS)

# Smallest datetime step; consecutive periods neither overlap nor leave a gap.
PERIOD_GAP = timedelta(microseconds=1)


def stage_for_status(status: LeadStatus) -> schemas.OpportunityStage | None:
    """Return the pipeline stage for ``status``, or None when it is not in the pipeline."""

    return STAGE_BY_STATUS.get(status)


def to_opportunity(lead: Lead) -> schemas.Opportunity | None:
    stage = stage_for_status(lead.status)
    if stage is None:
        return None
    return schemas.Opportunity(
        id=lead.id,
        lead_id=lead.id,
        customer_name=lead.customer_name,
        contact_number=lead.contact_number,
        device_info=f"{lead.device_type} {lead.device_model}",
        issue=lead.issue_reported,
        stage=stage,
        expected_revenue=lead.quoted_amount or 0,
        actual_revenue=lead.quoted_amount if lead.status is LeadStatus.WON else None,
        assigned_to=lead.assigned_to,
        priority=lead.priority,
        created_at=lead.created_at,
        updated_at=lead.updated_at,
    )


async def _pipeline_leads(session: AsyncSession, date_range: schemas.DateRange | None) -> list[Lead]:
    async with transaction(session, "load pipeline"):
        return await leads_repo.query_leads(session, status_in=PIPELINE_STATUSES, date_range=date_range)


async def get_opportunities(
    session: AsyncSession,
    stage: schemas.OpportunityStage | None = None,
    date_range: schemas.DateRange | None = None,
) -> list[schemas.Opportunity]:
    """Return pipeline leads as opportunities, newest first."""

    opportunities = []
    for lead in await _pipeline_leads(session, date_range):
        opportunity = to_opportunity(lead)
        if opportunity is None:
            continue
        if stage is not None and opportunity.stage is not stage:
            continue
        opportunities.append(opportunity)
    return opportunities


def compute_stats(leads: Iterable[Lead]) -> schemas.OpportunityStats:
    """Aggregate stage counts and revenue over pipeline leads."""

    stats = schemas.OpportunityStats()
    for lead in leads:
        if lead.status not in STAGE_BY_STATUS:
            continue
        amount = lead.quoted_amount or 0
        stats.total_opportunities += 1
        if lead.status is LeadStatus.INTERESTED:
            stats.qualified += 1
        elif lead.status is LeadStatus.QUOTED:
            stats.pickup += 1
        elif lead.status is LeadStatus.WON:
            stats.won += 1
            stats.actual_revenue += amount
        else:
            stats.lost += 1
        if lead.status is not LeadStatus.LOST:
            stats.expected_revenue += amount

    closed = stats.won + stats.lost
    stats.win_rate = round_int(stats.won / closed * 100) if closed else 0
    stats.avg_deal_value = (
        round_int(stats.expected_revenue / stats.total_opportunities) if stats.total_opportunities else 0
    )
    return stats


async def get_opportunity_stats(
    session: AsyncSession,
    date_range: schemas.DateRange | None = None,
) -> schemas.OpportunityStats:
    return compute_stats(await _pipeline_leads(session, date_range))


def percent_change(current: int, previous: int) -> int:
    """Relative change in percent; growth from zero reads as 100."""

    if previous == 0:
        return 100 if current > 0 else 0
    return round_int((current - previous) / previous * 100)


def compare_stats(
    current: schemas.OpportunityStats,
    previous: schemas.OpportunityStats,
) -> schemas.ComparativeStats:
    def relative(cur: int, prev: int) -> schemas.MetricComparison:
        return schemas.MetricComparison(current=cur, previous=prev, change=percent_change(cur, prev))

    return schemas.ComparativeStats(
        total_opportunities=relative(current.total_opportunities, previous.total_opportunities),
        # Rates compare in percentage points.
        win_rate=schemas.MetricComparison(
            current=current.win_rate,
            previous=previous.win_rate,
            change=current.win_rate - previous.win_rate,
        ),
        avg_deal_value=relative(current.avg_deal_value, previous.avg_deal_value),
        revenue=relative(current.actual_revenue, previous.actual_revenue),
    )


async def get_comparative_stats(
    session: AsyncSession,
    current_range: schemas.DateRange,
    previous_range: schemas.DateRange,
) -> schemas.ComparativeStats:
    current = await get_opportunity_stats(session, current_range)
    previous = await get_opportunity_stats(session, previous_range)
    return compare_stats(current, previous)


def get_previous_period(current: schemas.DateRange) -> schemas.DateRange:
    """Return the period of equal length ending just before ``current`` starts."""

    duration = current.end - current.start
    previous_end = current.start - PERIOD_GAP
    return schemas.DateRange(start=previous_end - duration, end=previous_end, field=current.field)


async def update_opportunity_stage(
    session: AsyncSession,
    lead_id: str,
    stage: schemas.OpportunityStage,
    *,
    actor_id: str | None = None,
) -> leads_service.StatusChangeResult:
    """Move a lead on the pipeline board through the status state machine."""

    result = await leads_service.change_status(session, lead_id, STATUS_BY_STAGE[stage], actor_id=actor_id)

    if stage is schemas.OpportunityStage.CLOSED_WON:
        action = ActivityAction.OPPORTUNITY_WON
    elif stage is schemas.OpportunityStage.CLOSED_LOST:
        action = ActivityAction.OPPORTUNITY_LOST
    else:
        action = ActivityAction.OPPORTUNITY_MOVED
    previous_stage = stage_for_status(result.old_status)
    await audit.log_activity(
        session,
        action=action,
        entity=ActivityEntity.OPPORTUNITY,
        entity_id=lead_id,
        entity_name=result.lead.customer_name,
        user_id=actor_id,
        old_value={"stage": previous_stage.value if previous_stage else None, "status": result.old_status.value},
        new_value={"stage": stage.value},
    )
    return result


def _months_ago(now: datetime, months: int) -> datetime:
    index = now.year * 12 + now.month - 1 - months
    year, month = divmod(index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


async def get_pipeline_metrics(
    session: AsyncSession,
    *,
    months: int = 6,
    now: datetime | None = None,
) -> list[schemas.PipelineMonth]:
    """Won/lost counts and revenue per creation month."""

    since = _months_ago(now or datetime.now(timezone.utc), months)
    async with transaction(session, "load pipeline metrics"):
        leads = await leads_repo.list_closed_since(session, created_since=since)

    buckets: dict[str, schemas.PipelineMonth] = {}
    for lead in leads:
        key = lead.created_at.strftime("%Y-%m")
        bucket = buckets.setdefault(key, schemas.PipelineMonth(month=key))
        if lead.status is LeadStatus.WON:
            bucket.won += 1
            bucket.revenue += lead.quoted_amount or 0
        else:
            bucket.lost += 1
    return [buckets[key] for key in sorted(buckets)]
