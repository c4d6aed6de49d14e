"""Schemas for the actionable-lead badge."""
from __future__ import annotations

from pydantic import BaseModel


class CountResponse(BaseModel):
    count: int
