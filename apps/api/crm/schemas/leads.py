"""Schemas for lead lifecycle endpoints."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.lead import LeadStatus


class LeadSnapshot(BaseModel):
    """Point-in-time image of a lead row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_name: str
    contact_number: str
    email: str | None = None
    device_type: str
    device_model: str
    issue_reported: str
    lead_source: str = "Manual"
    priority: int = 3
    status: LeadStatus
    assigned_to: str | None = None
    quoted_amount: int | None = None
    created_at: datetime
    updated_at: datetime
    first_contact_at: datetime | None = None
    repair_started_at: datetime | None = None
    repair_completed_at: datetime | None = None


class LeadCreateRequest(BaseModel):
    customer_name: str = Field(min_length=1)
    contact_number: str = Field(min_length=1)
    email: str | None = None
    device_type: str
    device_model: str
    issue_reported: str
    lead_source: str | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    assigned_to: str | None = None
    quoted_amount: int | None = Field(default=None, ge=0)


class LeadUpdateRequest(BaseModel):
    """Editable lead details. Workflow fields are changed through dedicated endpoints."""

    customer_name: str | None = Field(default=None, min_length=1)
    contact_number: str | None = Field(default=None, min_length=1)
    email: str | None = None
    device_type: str | None = None
    device_model: str | None = None
    issue_reported: str | None = None
    priority: int | None = Field(default=None, ge=1, le=5)

    @field_validator(
        "customer_name", "contact_number", "device_type", "device_model", "issue_reported", "priority"
    )
    @classmethod
    def _reject_null(cls, value: object) -> object:
        """Omit a field to leave it unchanged; these columns cannot be cleared."""

        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class StatusChangeRequest(BaseModel):
    status: str
    actor_id: str | None = None


class StatusChangeResponse(BaseModel):
    success: bool = True
    converted: bool = False
    lead: LeadSnapshot


class AssignRequest(BaseModel):
    staff_id: str | None = None
    actor_id: str | None = None


class QuoteRequest(BaseModel):
    amount: int = Field(ge=0)
    actor_id: str | None = None


class CustomerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lead_id: str | None = None
    customer_name: str
    contact_number: str
    email: str | None = None
    lifetime_value: int
    total_repairs: int


class ConvertResponse(BaseModel):
    success: bool = True
    customer_id: str


class ActivityEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None = None
    action_type: str
    entity_type: str
    entity_id: str | None = None
    entity_name: str | None = None
    old_value: dict | None = None
    new_value: dict | None = None
    metadata_json: dict = Field(default_factory=dict, serialization_alias="metadata")
    created_at: datetime
