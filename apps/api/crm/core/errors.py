"""Domain errors raised by the lead lifecycle services."""
from __future__ import annotations


class CRMError(Exception):
    """Base class for errors surfaced to API callers."""

    def __init__(self, message: str = "An error occurred") -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(CRMError):
    """A referenced lead or customer does not exist."""

    def __init__(self, resource: str = "Resource", resource_id: str | None = None) -> None:
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message)


class StorageError(CRMError):
    """The underlying store rejected a read or write."""


class ConflictError(CRMError):
    """The requested change collides with existing state."""


class InvalidStatusError(CRMError):
    """A status value outside the lead workflow was supplied."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Unknown lead status '{value}'")
