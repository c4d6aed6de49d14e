"""Expose ORM models."""
from .activity import ActivityLog
from .customer import Customer
from .lead import Lead
from .staff import Staff

__all__ = [
    "ActivityLog",
    "Customer",
    "Lead",
    "Staff",
]
