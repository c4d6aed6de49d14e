"""Lead repository helpers."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.lead import Lead, LeadStatus
from ..schemas.opportunities import DateRange


async def get_by_id(session: AsyncSession, lead_id: str) -> Lead | None:
    """Return a lead by identifier."""

    stmt: Select[tuple[Lead]] = select(Lead).where(Lead.id == lead_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_lead(
    session: AsyncSession,
    *,
    customer_name: str,
    contact_number: str,
    email: str | None,
    device_type: str,
    device_model: str,
    issue_reported: str,
    lead_source: str,
    priority: int,
    assigned_to: str | None,
    quoted_amount: int | None,
    now: datetime,
) -> Lead:
    """Insert a lead in the ``new`` status."""

    lead = Lead(
        id=str(uuid4()),
        customer_name=customer_name,
        contact_number=contact_number,
        email=email,
        device_type=device_type,
        device_model=device_model,
        issue_reported=issue_reported,
        lead_source=lead_source,
        priority=priority,
        status=LeadStatus.NEW,
        assigned_to=assigned_to,
        quoted_amount=quoted_amount,
        created_at=now,
        updated_at=now,
    )
    session.add(lead)
    await session.flush()
    return lead


async def delete_lead(session: AsyncSession, lead: Lead) -> None:
    """Remove a lead row."""

    await session.delete(lead)
    await session.flush()


async def count_leads(
    session: AsyncSession,
    *,
    status: LeadStatus,
    assigned_to: str | None = None,
) -> int:
    """Count leads in ``status``, optionally narrowed to one assignee."""

    stmt = select(func.count(Lead.id)).where(Lead.status == status)
    if assigned_to is not None:
        stmt = stmt.where(Lead.assigned_to == assigned_to)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def query_leads(
    session: AsyncSession,
    *,
    status_in: Iterable[LeadStatus],
    date_range: DateRange | None = None,
) -> list[Lead]:
    """Return leads in any of ``status_in``, newest first."""

    stmt = select(Lead).where(Lead.status.in_(list(status_in)))
    if date_range is not None:
        column = getattr(Lead, date_range.field.value)
        stmt = stmt.where(column >= date_range.start, column <= date_range.end)
    stmt = stmt.order_by(Lead.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_closed_since(session: AsyncSession, *, created_since: datetime) -> list[Lead]:
    """Return won and lost leads created on or after ``created_since``."""

    stmt = (
        select(Lead)
        .where(
            Lead.status.in_([LeadStatus.WON, LeadStatus.LOST]),
            Lead.created_at >= created_since,
        )
        .order_by(Lead.created_at.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_completed_repairs(session: AsyncSession, *, created_since: datetime) -> list[Lead]:
    """Return leads with both repair timestamps set, created on or after ``created_since``."""

    stmt = select(Lead).where(
        Lead.repair_started_at.is_not(None),
        Lead.repair_completed_at.is_not(None),
        Lead.created_at >= created_since,
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


def _overdue_filter(started_before: datetime) -> tuple:
    return (
        Lead.status == LeadStatus.IN_REPAIR,
        Lead.repair_started_at.is_not(None),
        Lead.repair_completed_at.is_(None),
        Lead.repair_started_at < started_before,
    )


async def list_overdue_repairs(session: AsyncSession, *, started_before: datetime) -> list[Lead]:
    """Return in-repair leads started before the cutoff, oldest first."""

    stmt = (
        select(Lead)
        .where(*_overdue_filter(started_before))
        .order_by(Lead.repair_started_at.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_overdue_repairs(session: AsyncSession, *, started_before: datetime) -> int:
    """Count in-repair leads started before the cutoff."""

    stmt = select(func.count(Lead.id)).where(*_overdue_filter(started_before))
    result = await session.execute(stmt)
    return int(result.scalar_one())
