"""Lead lifecycle: status transitions, SLA stamping and lead edits.

Any status may move to any other status. Transitions only decide which SLA
timestamps get stamped and whether the won lead is converted into a customer.
The status write commits first; the audit entry, the change notification and
the customer conversion run afterwards and cannot undo it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import InvalidStatusError, NotFoundError
from ..db.session import transaction
from ..models.activity import ActivityAction, ActivityEntity
from ..models.lead import Lead, LeadStatus
from ..repositories import leads as leads_repo
from ..repositories import staff as staff_repo
from ..schemas import leads as schemas
from ..schemas.changes import ChangeOp
from . import audit, changes, conversion

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 3
DEFAULT_SOURCE = "Manual"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class StatusChangeResult:
    lead: schemas.LeadSnapshot
    old_status: LeadStatus
    converted: bool


async def _require_staff(session: AsyncSession, staff_id: str | None) -> None:
    if staff_id is not None and await staff_repo.get_by_id(session, staff_id) is None:
        raise NotFoundError("Staff", staff_id)


def parse_status(value: LeadStatus | str) -> LeadStatus:
    """Return ``value`` as a workflow status or raise ``InvalidStatusError``."""

    if isinstance(value, LeadStatus):
        return value
    try:
        return LeadStatus(value)
    except ValueError:
        raise InvalidStatusError(value) from None


def sla_stamps(lead: Lead, old_status: LeadStatus, new_status: LeadStatus, now: datetime) -> dict[str, datetime]:
    """Return the SLA timestamps a transition sets. Already-set fields are never returned."""

    stamps: dict[str, datetime] = {}
    if old_status is LeadStatus.NEW and new_status is LeadStatus.CONTACTED and lead.first_contact_at is None:
        stamps["first_contact_at"] = now
    if new_status is LeadStatus.IN_REPAIR and lead.repair_started_at is None:
        stamps["repair_started_at"] = now
    if (
        old_status is LeadStatus.IN_REPAIR
        and new_status in (LeadStatus.WON, LeadStatus.COMPLETED)
        and lead.repair_completed_at is None
    ):
        stamps["repair_completed_at"] = now
    return stamps


async def change_status(
    session: AsyncSession,
    lead_id: str,
    new_status: LeadStatus | str,
    *,
    actor_id: str | None = None,
) -> StatusChangeResult:
    """Move a lead to ``new_status``, stamping SLA timestamps in the same write."""

    status = parse_status(new_status)
    now = _utcnow()

    async with transaction(session, "update lead status"):
        lead = await leads_repo.get_by_id(session, lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)

        before = schemas.LeadSnapshot.model_validate(lead)
        old_status = lead.status
        for field, value in sla_stamps(lead, old_status, status, now).items():
            setattr(lead, field, value)
        lead.status = status
        lead.updated_at = now
        session.add(lead)
        after = schemas.LeadSnapshot.model_validate(lead)

    await audit.log_activity(
        session,
        action=ActivityAction.LEAD_STATUS_CHANGED,
        entity=ActivityEntity.LEAD,
        entity_id=lead_id,
        entity_name=after.customer_name,
        user_id=actor_id,
        old_value={"status": old_status.value},
        new_value={"status": status.value},
    )
    changes.emit(ChangeOp.UPDATE, before=before, after=after)

    converted = status is LeadStatus.WON
    if converted:
        try:
            await conversion.convert_won_lead(session, after, actor_id=actor_id)
        except Exception:  # noqa: BLE001 - the committed status change stands
            logger.exception("Customer conversion failed for won lead %s", lead_id)

    return StatusChangeResult(lead=after, old_status=old_status, converted=converted)


async def get_lead(session: AsyncSession, lead_id: str) -> schemas.LeadSnapshot:
    async with transaction(session, "load lead"):
        lead = await leads_repo.get_by_id(session, lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        return schemas.LeadSnapshot.model_validate(lead)


async def create_lead(
    session: AsyncSession,
    payload: schemas.LeadCreateRequest,
    *,
    actor_id: str | None = None,
) -> schemas.LeadSnapshot:
    """Insert a lead in the ``new`` status."""

    source = payload.lead_source or DEFAULT_SOURCE
    async with transaction(session, "create lead"):
        await _require_staff(session, payload.assigned_to)
        lead = await leads_repo.create_lead(
            session,
            customer_name=payload.customer_name,
            contact_number=payload.contact_number,
            email=payload.email,
            device_type=payload.device_type,
            device_model=payload.device_model,
            issue_reported=payload.issue_reported,
            lead_source=source,
            priority=payload.priority or DEFAULT_PRIORITY,
            assigned_to=payload.assigned_to,
            quoted_amount=payload.quoted_amount,
            now=_utcnow(),
        )
        created = schemas.LeadSnapshot.model_validate(lead)

    await audit.log_activity(
        session,
        action=ActivityAction.LEAD_CREATED,
        entity=ActivityEntity.LEAD,
        entity_id=created.id,
        entity_name=created.customer_name,
        user_id=actor_id,
        new_value={
            "device": f"{created.device_type} {created.device_model}",
            "issue": created.issue_reported,
        },
        metadata={"source": source},
    )
    changes.emit(ChangeOp.INSERT, after=created)
    return created


async def _mutate(
    session: AsyncSession,
    lead_id: str,
    action: str,
    fields: dict[str, object],
) -> tuple[schemas.LeadSnapshot, schemas.LeadSnapshot]:
    """Apply ``fields`` to one lead and publish the update."""

    async with transaction(session, action):
        lead = await leads_repo.get_by_id(session, lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        if "assigned_to" in fields:
            await _require_staff(session, fields["assigned_to"])
        before = schemas.LeadSnapshot.model_validate(lead)
        for field, value in fields.items():
            setattr(lead, field, value)
        lead.updated_at = _utcnow()
        session.add(lead)
        after = schemas.LeadSnapshot.model_validate(lead)

    changes.emit(ChangeOp.UPDATE, before=before, after=after)
    return before, after


async def assign_lead(
    session: AsyncSession,
    lead_id: str,
    staff_id: str | None,
    *,
    actor_id: str | None = None,
) -> schemas.LeadSnapshot:
    """Hand a lead to ``staff_id`` or unassign it."""

    before, after = await _mutate(session, lead_id, "assign lead", {"assigned_to": staff_id})
    await audit.log_activity(
        session,
        action=ActivityAction.LEAD_ASSIGNED,
        entity=ActivityEntity.LEAD,
        entity_id=lead_id,
        entity_name=after.customer_name,
        user_id=actor_id,
        old_value={"assigned_to": before.assigned_to},
        new_value={"assigned_to": after.assigned_to},
    )
    return after


async def update_lead(
    session: AsyncSession,
    lead_id: str,
    payload: schemas.LeadUpdateRequest,
    *,
    actor_id: str | None = None,
) -> schemas.LeadSnapshot:
    """Edit contact and device details."""

    fields = payload.model_dump(exclude_unset=True)
    before, after = await _mutate(session, lead_id, "update lead", fields)
    await audit.log_activity(
        session,
        action=ActivityAction.LEAD_UPDATED,
        entity=ActivityEntity.LEAD,
        entity_id=lead_id,
        entity_name=after.customer_name,
        user_id=actor_id,
        old_value={key: getattr(before, key) for key in fields},
        new_value={key: getattr(after, key) for key in fields},
    )
    return after


async def update_quoted_amount(
    session: AsyncSession,
    lead_id: str,
    amount: int,
    *,
    actor_id: str | None = None,
) -> schemas.LeadSnapshot:
    """Set the quote that feeds pipeline revenue."""

    before, after = await _mutate(session, lead_id, "update quote", {"quoted_amount": amount})
    await audit.log_activity(
        session,
        action=ActivityAction.OPPORTUNITY_CREATED,
        entity=ActivityEntity.OPPORTUNITY,
        entity_id=lead_id,
        entity_name=after.customer_name,
        user_id=actor_id,
        old_value={"quoted_amount": before.quoted_amount} if before.quoted_amount is not None else None,
        new_value={"quoted_amount": amount},
    )
    return after


async def delete_lead(
    session: AsyncSession,
    lead_id: str,
    *,
    actor_id: str | None = None,
) -> schemas.LeadSnapshot:
    async with transaction(session, "delete lead"):
        lead = await leads_repo.get_by_id(session, lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        before = schemas.LeadSnapshot.model_validate(lead)
        await leads_repo.delete_lead(session, lead)

    await audit.log_activity(
        session,
        action=ActivityAction.LEAD_DELETED,
        entity=ActivityEntity.LEAD,
        entity_id=lead_id,
        entity_name=before.customer_name,
        user_id=actor_id,
        old_value={"status": before.status.value},
    )
    changes.emit(ChangeOp.DELETE, before=before)
    return before
