"""Lead to customer conversion.

A customer is keyed by phone number. Won leads credit the customer found by
lead link, then by phone, and only create a row when neither exists. The
storage layer enforces one customer per phone number; losing a concurrent
first-time insert falls back to crediting the row that won the race.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import ConflictError, NotFoundError
from ..db.session import transaction
from ..models.activity import ActivityAction, ActivityEntity
from ..models.customer import Customer
from ..repositories import customers as customers_repo
from ..repositories import leads as leads_repo
from ..schemas.leads import CustomerRead, LeadSnapshot
from . import audit

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConversionOutcome:
    customer: CustomerRead
    created: bool


def _credit(customer: Customer, lead_id: str, amount: int) -> None:
    customer.lead_id = lead_id
    customer.lifetime_value = (customer.lifetime_value or 0) + amount
    customer.total_repairs = (customer.total_repairs or 0) + 1


async def _insert_or_credit(
    session: AsyncSession,
    lead: LeadSnapshot,
    *,
    lifetime_value: int,
    credit: int,
) -> tuple[Customer, bool]:
    """Create the customer for ``lead`` unless another writer created it first."""

    try:
        async with session.begin_nested():
            customer = await customers_repo.create_customer(
                session,
                lead_id=lead.id,
                customer_name=lead.customer_name,
                contact_number=lead.contact_number,
                email=lead.email or None,
                lifetime_value=lifetime_value,
                total_repairs=1,
            )
        return customer, True
    except IntegrityError:
        existing = await customers_repo.get_by_phone(session, lead.contact_number)
        if existing is None:
            raise
        logger.info("Customer for %s was created concurrently, crediting it", lead.contact_number)
        _credit(existing, lead.id, credit)
        session.add(existing)
        return existing, False


async def convert_won_lead(
    session: AsyncSession,
    lead: LeadSnapshot,
    *,
    actor_id: str | None = None,
) -> ConversionOutcome:
    """Credit a won lead to its customer, creating the customer on first sight.

    Safe to repeat: every call credits the lead once more but never creates a
    second customer for the same phone number.
    """

    amount = lead.quoted_amount or 0
    async with transaction(session, "convert lead to customer"):
        customer = await customers_repo.get_by_lead_id(session, lead.id)
        if customer is None:
            customer = await customers_repo.get_by_phone(session, lead.contact_number)
        if customer is not None:
            _credit(customer, lead.id, amount)
            session.add(customer)
            created = False
        else:
            customer, created = await _insert_or_credit(session, lead, lifetime_value=amount, credit=amount)
        result = CustomerRead.model_validate(customer)

    await audit.log_activity(
        session,
        action=ActivityAction.CUSTOMER_CREATED if created else ActivityAction.CUSTOMER_UPDATED,
        entity=ActivityEntity.CUSTOMER,
        entity_id=result.id,
        entity_name=result.customer_name,
        user_id=actor_id,
        new_value={"lifetime_value": result.lifetime_value, "total_repairs": result.total_repairs},
        metadata={"lead_id": lead.id, "converted_from_lead": True, "amount": amount},
    )
    return ConversionOutcome(customer=result, created=created)


async def convert_lead_to_customer(
    session: AsyncSession,
    lead_id: str,
    *,
    actor_id: str | None = None,
) -> ConversionOutcome:
    """Staff-initiated conversion of any lead.

    Unlike the won-lead path this is a one-shot action: a lead that already
    has a linked customer is rejected with ``ConflictError``. Revenue is not
    credited here; it is credited when the lead is won.
    """

    async with transaction(session, "convert lead to customer"):
        lead_row = await leads_repo.get_by_id(session, lead_id)
        if lead_row is None:
            raise NotFoundError("Lead", lead_id)
        lead = LeadSnapshot.model_validate(lead_row)

        if await customers_repo.get_by_lead_id(session, lead_id) is not None:
            raise ConflictError("Lead is already linked to a customer")

        customer = await customers_repo.get_by_phone(session, lead.contact_number)
        if customer is not None:
            _credit(customer, lead_id, 0)
            session.add(customer)
            created = False
        else:
            customer, created = await _insert_or_credit(session, lead, lifetime_value=0, credit=0)
        result = CustomerRead.model_validate(customer)

    await audit.log_activity(
        session,
        action=ActivityAction.CUSTOMER_CREATED if created else ActivityAction.CUSTOMER_UPDATED,
        entity=ActivityEntity.CUSTOMER,
        entity_id=result.id,
        entity_name=result.customer_name,
        user_id=actor_id,
        metadata={"lead_id": lead_id, "converted_from_lead": True},
    )
    return ConversionOutcome(customer=result, created=created)


async def get_customer_for_lead(session: AsyncSession, lead_id: str) -> CustomerRead | None:
    async with transaction(session, "load customer"):
        customer = await customers_repo.get_by_lead_id(session, lead_id)
        return CustomerRead.model_validate(customer) if customer is not None else None
