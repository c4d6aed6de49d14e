"""Best-effort activity logging."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity import ActivityAction, ActivityEntity
from ..repositories import activity as activity_repo

logger = logging.getLogger(__name__)


async def log_activity(
    session: AsyncSession,
    *,
    action: ActivityAction,
    entity: ActivityEntity,
    entity_id: str | None = None,
    entity_name: str | None = None,
    user_id: str | None = None,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Append an activity record in its own transaction.

    Activity logging is diagnostic: a failure is logged for operators and
    reported through the return value, never raised to the caller.
    """

    try:
        async with session.begin():
            await activity_repo.append(
                session,
                action_type=action.value,
                entity_type=entity.value,
                entity_id=entity_id,
                entity_name=entity_name,
                user_id=user_id,
                old_value=old_value,
                new_value=new_value,
                metadata=metadata,
            )
    except Exception:  # noqa: BLE001 - audit failures must not abort the caller
        logger.exception("Failed to log %s for %s %s", action.value, entity.value, entity_id)
        return False
    return True
