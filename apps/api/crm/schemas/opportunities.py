"""Schemas for the sales pipeline projection."""
from __future__ import annotations

from datetime import datetime
import enum

from pydantic import BaseModel, Field, model_validator


class OpportunityStage(str, enum.Enum):
    QUALIFIED = "qualified"
    PICKUP = "pickup"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


class DateField(str, enum.Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class DateRange(BaseModel):
    """Inclusive ``[start, end]`` window applied to one lead timestamp."""

    start: datetime
    end: datetime
    field: DateField = DateField.CREATED_AT

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class Opportunity(BaseModel):
    id: str
    lead_id: str
    customer_name: str
    contact_number: str
    device_info: str
    issue: str
    stage: OpportunityStage
    expected_revenue: int
    actual_revenue: int | None = None
    assigned_to: str | None = None
    priority: int
    created_at: datetime
    updated_at: datetime


class OpportunityStats(BaseModel):
    total_opportunities: int = 0
    qualified: int = 0
    pickup: int = 0
    won: int = 0
    lost: int = 0
    expected_revenue: int = 0
    actual_revenue: int = 0
    win_rate: int = Field(default=0, description="Percentage of closed deals that were won")
    avg_deal_value: int = 0


class MetricComparison(BaseModel):
    current: int
    previous: int
    change: int


class ComparativeStats(BaseModel):
    total_opportunities: MetricComparison
    win_rate: MetricComparison
    avg_deal_value: MetricComparison
    revenue: MetricComparison


class StageMoveRequest(BaseModel):
    stage: OpportunityStage
    actor_id: str | None = None


class PipelineMonth(BaseModel):
    month: str
    won: int = 0
    lost: int = 0
    revenue: int = 0
