"""Customer persistence helpers."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.customer import Customer


async def get_by_lead_id(session: AsyncSession, lead_id: str) -> Customer | None:
    """Return the customer linked to ``lead_id``."""

    result = await session.execute(select(Customer).where(Customer.lead_id == lead_id))
    return result.scalar_one_or_none()


async def get_by_phone(session: AsyncSession, contact_number: str) -> Customer | None:
    """Return the customer owning ``contact_number``."""

    result = await session.execute(select(Customer).where(Customer.contact_number == contact_number))
    return result.scalar_one_or_none()


async def create_customer(
    session: AsyncSession,
    *,
    lead_id: str,
    customer_name: str,
    contact_number: str,
    email: str | None,
    lifetime_value: int,
    total_repairs: int,
) -> Customer:
    """Persist a new customer and return it."""

    customer = Customer(
        id=str(uuid4()),
        lead_id=lead_id,
        customer_name=customer_name,
        contact_number=contact_number,
        email=email,
        lifetime_value=lifetime_value,
        total_repairs=total_repairs,
    )
    session.add(customer)
    await session.flush()
    return customer
