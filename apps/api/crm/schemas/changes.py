"""Change-notification events emitted for lead row mutations."""
from __future__ import annotations

from datetime import datetime, timezone
import enum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from .leads import LeadSnapshot


class ChangeOp(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class LeadChange(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid4()))
    op: ChangeOp
    before: LeadSnapshot | None = None
    after: LeadSnapshot | None = None
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_images(self) -> "LeadChange":
        if self.op is ChangeOp.INSERT and self.after is None:
            raise ValueError("insert events carry the inserted row")
        if self.op is ChangeOp.DELETE and self.before is None:
            raise ValueError("delete events carry the deleted row")
        if self.op is ChangeOp.UPDATE and self.after is None:
            raise ValueError("update events carry the updated row")
        return self
