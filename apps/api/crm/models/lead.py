"""Lead model."""
from __future__ import annotations

from datetime import datetime, timezone
import enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from .staff import Staff

from .base import Base


class LeadStatus(str, enum.Enum):
    NEW = "new"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    QUOTED = "quoted"
    WON = "won"
    LOST = "lost"
    IN_REPAIR = "in_repair"
    COMPLETED = "completed"
    DELIVERED = "delivered"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lead(Base):
    """Inbound repair inquiry."""

    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    customer_name: Mapped[str] = mapped_column(String, nullable=False)
    contact_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String)
    device_type: Mapped[str] = mapped_column(String, nullable=False)
    device_model: Mapped[str] = mapped_column(String, nullable=False)
    issue_reported: Mapped[str] = mapped_column(Text, nullable=False)
    lead_source: Mapped[str] = mapped_column(String, default="Manual", nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    status: Mapped[LeadStatus] = mapped_column(
        Enum(LeadStatus, name="lead_status", values_callable=lambda e: [m.value for m in e]),
        default=LeadStatus.NEW,
        nullable=False,
        index=True,
    )
    assigned_to: Mapped[str | None] = mapped_column(ForeignKey("staff.id", ondelete="SET NULL"), index=True)
    quoted_amount: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    first_contact_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    repair_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    repair_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    staff: Mapped["Staff | None"] = relationship("Staff", back_populates="leads")
