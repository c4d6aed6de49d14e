"""Read access to the audit trail."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import transaction
from ..models.activity import ActivityEntity
from ..repositories import activity as activity_repo
from ..schemas.leads import ActivityEntryRead


async def list_entity_activity(
    session: AsyncSession,
    entity: ActivityEntity,
    entity_id: str,
) -> list[ActivityEntryRead]:
    async with transaction(session, "load activity"):
        entries = await activity_repo.list_for_entity(session, entity_type=entity.value, entity_id=entity_id)
        return [ActivityEntryRead.model_validate(entry) for entry in entries]


async def list_recent_activity(session: AsyncSession, limit: int = 10) -> list[ActivityEntryRead]:
    async with transaction(session, "load activity"):
        entries = await activity_repo.list_recent(session, limit=limit)
        return [ActivityEntryRead.model_validate(entry) for entry in entries]
