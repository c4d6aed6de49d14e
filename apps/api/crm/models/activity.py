"""Activity log model."""
from __future__ import annotations

from datetime import datetime, timezone
import enum
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ActivityAction(str, enum.Enum):
    LEAD_CREATED = "lead_created"
    LEAD_UPDATED = "lead_updated"
    LEAD_STATUS_CHANGED = "lead_status_changed"
    LEAD_ASSIGNED = "lead_assigned"
    LEAD_DELETED = "lead_deleted"
    CUSTOMER_CREATED = "customer_created"
    CUSTOMER_UPDATED = "customer_updated"
    OPPORTUNITY_CREATED = "opportunity_created"
    OPPORTUNITY_MOVED = "opportunity_moved"
    OPPORTUNITY_WON = "opportunity_won"
    OPPORTUNITY_LOST = "opportunity_lost"


class ActivityEntity(str, enum.Enum):
    LEAD = "lead"
    CUSTOMER = "customer"
    OPPORTUNITY = "opportunity"


class ActivityLog(Base):
    """Append-only audit record. Rows are never updated or deleted."""

    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String, index=True)
    action_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String, index=True)
    entity_name: Mapped[str | None] = mapped_column(String)
    old_value: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    new_value: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
