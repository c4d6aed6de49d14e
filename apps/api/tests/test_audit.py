"""Tests for best-effort activity logging and audit reads."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from crm.models.activity import ActivityAction, ActivityEntity
from crm.repositories import activity as activity_repo
from crm.services import activity as activity_service
from crm.services import audit


class DummySession:
    def begin(self):  # noqa: D401 - mimic SQLAlchemy's async begin
        session = self

        class _Tx:
            async def __aenter__(self_inner):
                return session

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Tx()


@pytest.mark.asyncio
async def test_log_activity_writes_enum_values(monkeypatch):
    append = AsyncMock()
    monkeypatch.setattr(activity_repo, "append", append)

    ok = await audit.log_activity(
        DummySession(),
        action=ActivityAction.LEAD_ASSIGNED,
        entity=ActivityEntity.LEAD,
        entity_id="lead-1",
        entity_name="Rohan Gupta",
        user_id="staff-1",
        old_value={"assigned_to": None},
        new_value={"assigned_to": "staff-2"},
    )

    assert ok is True
    kwargs = append.await_args.kwargs
    assert kwargs["action_type"] == "lead_assigned"
    assert kwargs["entity_type"] == "lead"
    assert kwargs["metadata"] is None


@pytest.mark.asyncio
async def test_log_activity_failure_is_reported_not_raised(monkeypatch, caplog):
    monkeypatch.setattr(activity_repo, "append", AsyncMock(side_effect=RuntimeError("disk full")))

    with caplog.at_level(logging.ERROR, logger="crm.services.audit"):
        ok = await audit.log_activity(DummySession(), action=ActivityAction.LEAD_DELETED, entity=ActivityEntity.LEAD)

    assert ok is False
    assert "lead_deleted" in caplog.text


@pytest.mark.asyncio
async def test_entity_activity_exposes_metadata(monkeypatch):
    entry = SimpleNamespace(
        id="log-1",
        user_id=None,
        action_type="customer_created",
        entity_type="customer",
        entity_id="cust-1",
        entity_name="Rohan Gupta",
        old_value=None,
        new_value={"lifetime_value": 900},
        metadata_json={"lead_id": "lead-1"},
        created_at=datetime(2025, 2, 3, tzinfo=timezone.utc),
    )
    listing = AsyncMock(return_value=[entry])
    monkeypatch.setattr(activity_repo, "list_for_entity", listing)

    entries = await activity_service.list_entity_activity(DummySession(), ActivityEntity.CUSTOMER, "cust-1")

    assert listing.await_args.kwargs == {"entity_type": "customer", "entity_id": "cust-1"}
    assert entries[0].model_dump(by_alias=True)["metadata"] == {"lead_id": "lead-1"}
