"""Staff repository helpers."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.staff import Staff


async def get_by_id(session: AsyncSession, staff_id: str) -> Staff | None:
    """Return a staff member by identifier."""

    result = await session.execute(select(Staff).where(Staff.id == staff_id))
    return result.scalar_one_or_none()
