"""Schemas for SLA turnaround analytics."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class TurnaroundMetrics(BaseModel):
    avg_repair_time: float = 0
    avg_response_time: float = 0
    fastest_repair_time: float | None = None
    slowest_repair_time: float | None = None
    repairs_completed: int = 0
    overdue_repairs: int = 0


class OverdueRepair(BaseModel):
    id: str
    customer_name: str
    device_type: str
    device_model: str
    repair_started_at: datetime
    hours_in_repair: float
