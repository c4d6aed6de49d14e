"""Activity log persistence helpers. Append and read only."""
from __future__ import annotations

from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity import ActivityLog


async def append(
    session: AsyncSession,
    *,
    action_type: str,
    entity_type: str,
    entity_id: str | None = None,
    entity_name: str | None = None,
    user_id: str | None = None,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
) -> ActivityLog:
    """Insert one activity record."""

    entry = ActivityLog(
        id=str(uuid4()),
        user_id=user_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        old_value=old_value,
        new_value=new_value,
        metadata_json=metadata or {},
    )
    session.add(entry)
    await session.flush()
    return entry


async def list_for_entity(session: AsyncSession, *, entity_type: str, entity_id: str) -> list[ActivityLog]:
    """Return the activity trail of one entity, newest first."""

    stmt = (
        select(ActivityLog)
        .where(ActivityLog.entity_type == entity_type, ActivityLog.entity_id == entity_id)
        .order_by(ActivityLog.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_recent(session: AsyncSession, *, limit: int = 10) -> list[ActivityLog]:
    """Return the latest activity across all entities."""

    stmt = select(ActivityLog).order_by(ActivityLog.created_at.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
