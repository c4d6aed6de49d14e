"""HTTP surface tests with services stubbed out."""
from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketDisconnect

from crm.core.errors import ConflictError, NotFoundError, StorageError
from crm.db.session import get_session
from crm.main import app
from crm.models.lead import LeadStatus
from crm.routers import notifications as notifications_router
from crm.schemas.changes import ChangeOp, LeadChange
from crm.schemas.leads import LeadSnapshot
from crm.services import changes
from crm.services import conversion as conversion_service
from crm.services import counter as counter_service
from crm.services import leads as leads_service
from crm.services.leads import StatusChangeResult

NOW = datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)


async def _dummy_session():
    yield SimpleNamespace()


@pytest.fixture(autouse=True)
def override_session():
    app.dependency_overrides[get_session] = _dummy_session
    yield
    app.dependency_overrides.pop(get_session, None)


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


def snapshot(status: LeadStatus = LeadStatus.WON) -> LeadSnapshot:
    return LeadSnapshot(
        id="lead-1",
        customer_name="Neha Joshi",
        contact_number="9811122233",
        device_type="iPhone",
        device_model="13 mini",
        issue_reported="Face ID",
        status=status,
        quoted_amount=3200,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.mark.asyncio
async def test_status_change_reports_conversion(client, monkeypatch):
    change = AsyncMock(return_value=StatusChangeResult(lead=snapshot(), old_status=LeadStatus.IN_REPAIR, converted=True))
    monkeypatch.setattr(leads_service, "change_status", change)

    response = await client.post("/api/leads/lead-1/status", json={"status": "won", "actor_id": "staff-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["converted"] is True
    assert body["lead"]["status"] == "won"
    assert change.await_args.args[1:] == ("lead-1", "won")
    assert change.await_args.kwargs == {"actor_id": "staff-1"}


@pytest.mark.asyncio
async def test_unknown_status_is_unprocessable(client):
    response = await client.post("/api/leads/lead-1/status", json={"status": "archived"})

    assert response.status_code == 422
    assert "archived" in response.json()["detail"]


@pytest.mark.asyncio
async def test_missing_lead_is_not_found(client, monkeypatch):
    monkeypatch.setattr(leads_service, "get_lead", AsyncMock(side_effect=NotFoundError("Lead", "nope")))

    response = await client.get("/api/leads/nope")

    assert response.status_code == 404
    assert response.json() == {"detail": "Lead with id 'nope' not found"}


@pytest.mark.asyncio
async def test_storage_failure_is_unavailable(client, monkeypatch):
    monkeypatch.setattr(leads_service, "change_status", AsyncMock(side_effect=StorageError("Failed to update lead status")))

    response = await client.post("/api/leads/lead-1/status", json={"status": "contacted"})

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_second_manual_conversion_conflicts(client, monkeypatch):
    monkeypatch.setattr(
        conversion_service,
        "convert_lead_to_customer",
        AsyncMock(side_effect=ConflictError("Lead lead-1 is already linked to a customer")),
    )

    response = await client.post("/api/leads/lead-1/convert")

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_manual_conversion_returns_customer_id(client, monkeypatch):
    outcome = conversion_service.ConversionOutcome(customer=SimpleNamespace(id="cust-4"), created=True)
    monkeypatch.setattr(conversion_service, "convert_lead_to_customer", AsyncMock(return_value=outcome))

    response = await client.post("/api/leads/lead-1/convert")

    assert response.status_code == 200
    assert response.json() == {"success": True, "customer_id": "cust-4"}


@pytest.mark.asyncio
async def test_open_date_window_is_rejected(client):
    response = await client.get("/api/opportunities", params={"from": "2025-01-01T00:00:00Z"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_previous_period_endpoint(client):
    response = await client.get(
        "/api/opportunities/previous-period",
        params={"from": "2025-03-08T00:00:00Z", "to": "2025-03-15T00:00:00Z"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["field"] == "created_at"
    assert body["end"].startswith("2025-03-07T23:59:59.999999")
    assert body["start"].startswith("2025-02-28T23:59:59.999999")


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/opportunities/previous-period", "/api/opportunities/compare"])
async def test_reversed_date_window_is_rejected(client, path):
    response = await client.get(path, params={"from": "2025-03-15T00:00:00Z", "to": "2025-03-08T00:00:00Z"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_clearing_required_lead_field_is_unprocessable(client, monkeypatch):
    update = AsyncMock()
    monkeypatch.setattr(leads_service, "update_lead", update)

    response = await client.patch("/api/leads/lead-1", json={"customer_name": None})

    assert response.status_code == 422
    update.assert_not_awaited()


@pytest.mark.asyncio
async def test_assigning_unknown_staff_is_not_found(client, monkeypatch):
    monkeypatch.setattr(leads_service, "assign_lead", AsyncMock(side_effect=NotFoundError("Staff", "staff-404")))

    response = await client.post("/api/leads/lead-1/assign", json={"staff_id": "staff-404"})

    assert response.status_code == 404
    assert response.json() == {"detail": "Staff with id 'staff-404' not found"}

@pytest.mark.asyncio
async def test_count_endpoint_uses_viewer_predicate(client, monkeypatch):
    fetch = AsyncMock(return_value=3)
    monkeypatch.setattr(counter_service, "fetch_count", fetch)

    response = await client.get("/api/notifications/count", params={"staff_id": "staff-7", "role": "technician"})

    assert response.status_code == 200
    assert response.json() == {"count": 3}
    predicate = fetch.await_args.args[1]
    assert predicate.staff_id == "staff-7"
    assert predicate.restricted is True


def test_live_count_websocket_pushes_and_refreshes(monkeypatch):
    counts = iter([2, 5])

    async def fake_fetch(predicate):
        return next(counts)

    monkeypatch.setattr(notifications_router, "fetch_viewer_count", fake_fetch)

    with TestClient(app) as test_client:
        with test_client.websocket_connect("/api/notifications/ws?staff_id=staff-1&role=admin") as websocket:
            assert websocket.receive_json() == {"type": "count", "count": 2}
            websocket.send_json({"type": "refresh"})
            assert websocket.receive_json() == {"type": "count", "count": 5}


def test_live_count_websocket_rejects_unknown_role():
    with TestClient(app) as test_client:
        with pytest.raises(WebSocketDisconnect):
            with test_client.websocket_connect("/api/notifications/ws?staff_id=staff-1&role=intern") as websocket:
                websocket.receive_json()


def _failing_after_first(first: int):
    calls = iter([first])

    async def fake_fetch(predicate):
        try:
            return next(calls)
        except StopIteration:
            raise StorageError("Failed to count leads") from None

    return fake_fetch


def test_live_count_websocket_closes_when_change_refresh_fails(monkeypatch):
    monkeypatch.setattr(notifications_router, "fetch_viewer_count", _failing_after_first(0))

    with TestClient(app) as test_client:
        with test_client.websocket_connect("/api/notifications/ws?staff_id=staff-1&role=admin") as websocket:
            assert websocket.receive_json() == {"type": "count", "count": 0}
            # Deleting an unseen lead at zero forces a recount, which fails.
            test_client.portal.call(
                changes.broker.publish, LeadChange(op=ChangeOp.DELETE, before=snapshot(LeadStatus.NEW))
            )
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

    assert exc_info.value.code == 1011


def test_live_count_websocket_closes_when_client_refresh_fails(monkeypatch):
    monkeypatch.setattr(notifications_router, "fetch_viewer_count", _failing_after_first(4))

    with TestClient(app) as test_client:
        with test_client.websocket_connect("/api/notifications/ws?staff_id=staff-1&role=admin") as websocket:
            assert websocket.receive_json() == {"type": "count", "count": 4}
            websocket.send_json({"type": "refresh"})
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

    assert exc_info.value.code == 1011
