"""Tests for lead to customer conversion."""
from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from crm.core.errors import ConflictError, NotFoundError
from crm.models.lead import LeadStatus
from crm.repositories import activity as activity_repo
from crm.repositories import customers as customers_repo
from crm.repositories import leads as leads_repo
from crm.schemas.leads import LeadSnapshot
from crm.services import conversion as conversion_service


class DummySession:
    """Minimal session stub supporting async transaction context and savepoints."""

    def __init__(self) -> None:
        self.added: list[object] = []

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def _tx(self):
        session = self

        class _Tx:
            async def __aenter__(self_inner):
                return session

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Tx()

    def begin(self):  # noqa: D401 - mimic SQLAlchemy's async begin
        return self._tx()

    def begin_nested(self):
        return self._tx()


class CustomerTable:
    """In-memory stand-in for the customers table and its repository."""

    def __init__(self) -> None:
        self.rows: list[SimpleNamespace] = []

    async def get_by_lead_id(self, session, lead_id):
        return next((row for row in self.rows if row.lead_id == lead_id), None)

    async def get_by_phone(self, session, contact_number):
        return next((row for row in self.rows if row.contact_number == contact_number), None)

    async def create_customer(self, session, **fields):
        if any(row.contact_number == fields["contact_number"] for row in self.rows):
            raise IntegrityError("INSERT INTO customers", {}, Exception("duplicate phone"))
        row = SimpleNamespace(id=f"cust-{len(self.rows) + 1}", **fields)
        self.rows.append(row)
        return row


@pytest.fixture
def customers(monkeypatch):
    table = CustomerTable()
    monkeypatch.setattr(customers_repo, "get_by_lead_id", table.get_by_lead_id)
    monkeypatch.setattr(customers_repo, "get_by_phone", table.get_by_phone)
    monkeypatch.setattr(customers_repo, "create_customer", table.create_customer)
    return table


@pytest.fixture
def audit_entries(monkeypatch):
    entries: list[dict] = []

    async def append_stub(session, **kwargs):
        entries.append(kwargs)

    monkeypatch.setattr(activity_repo, "append", append_stub)
    return entries


def won_lead(lead_id: str, amount: int | None, phone: str = "9876543210") -> LeadSnapshot:
    now = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)
    return LeadSnapshot(
        id=lead_id,
        customer_name="Kabir Shah",
        contact_number=phone,
        email="kabir@example.com",
        device_type="iPhone",
        device_model="13",
        issue_reported="Battery",
        status=LeadStatus.WON,
        quoted_amount=amount,
        created_at=now,
        updated_at=now,
    )


@pytest.mark.asyncio
async def test_first_conversion_creates_customer(customers, audit_entries):
    outcome = await conversion_service.convert_won_lead(DummySession(), won_lead("lead-1", 5000))

    assert outcome.created is True
    assert outcome.customer.lifetime_value == 5000
    assert outcome.customer.total_repairs == 1
    assert outcome.customer.lead_id == "lead-1"
    assert audit_entries[-1]["action_type"] == "customer_created"


@pytest.mark.asyncio
async def test_repeated_conversion_never_duplicates_customer(customers, audit_entries):
    lead = won_lead("lead-1", 700)

    await conversion_service.convert_won_lead(DummySession(), lead)
    outcome = await conversion_service.convert_won_lead(DummySession(), lead)

    assert len(customers.rows) == 1
    assert outcome.created is False
    assert outcome.customer.lifetime_value == 1400
    assert outcome.customer.total_repairs == 2
    assert audit_entries[-1]["action_type"] == "customer_updated"


@pytest.mark.asyncio
async def test_leads_sharing_a_phone_merge_into_one_customer(customers, audit_entries):
    await conversion_service.convert_won_lead(DummySession(), won_lead("lead-1", 1000))
    outcome = await conversion_service.convert_won_lead(DummySession(), won_lead("lead-2", 2000))

    assert len(customers.rows) == 1
    assert outcome.customer.lifetime_value == 3000
    assert outcome.customer.total_repairs == 2
    assert outcome.customer.lead_id == "lead-2"


@pytest.mark.asyncio
async def test_missing_quote_counts_as_zero(customers, audit_entries):
    outcome = await conversion_service.convert_won_lead(DummySession(), won_lead("lead-1", None))

    assert outcome.customer.lifetime_value == 0
    assert outcome.customer.total_repairs == 1


@pytest.mark.asyncio
async def test_concurrent_first_insert_credits_existing_row(customers, audit_entries, monkeypatch):
    # Another writer creates the customer between our phone lookup and insert.
    rival = SimpleNamespace(
        id="cust-rival",
        lead_id="lead-0",
        customer_name="Kabir Shah",
        contact_number="9876543210",
        email=None,
        lifetime_value=400,
        total_repairs=1,
    )
    lookups = {"count": 0}

    async def get_by_phone(session, contact_number):
        lookups["count"] += 1
        if lookups["count"] == 1:
            customers.rows.append(rival)
            return None
        return rival

    monkeypatch.setattr(customers_repo, "get_by_phone", get_by_phone)

    outcome = await conversion_service.convert_won_lead(DummySession(), won_lead("lead-1", 600))

    assert outcome.created is False
    assert outcome.customer.id == "cust-rival"
    assert outcome.customer.lifetime_value == 1000
    assert outcome.customer.total_repairs == 2
    assert len(customers.rows) == 1


@pytest.mark.asyncio
async def test_manual_conversion_links_existing_phone(customers, audit_entries, monkeypatch):
    customers.rows.append(
        SimpleNamespace(
            id="cust-1",
            lead_id=None,
            customer_name="Kabir Shah",
            contact_number="9876543210",
            email=None,
            lifetime_value=2500,
            total_repairs=1,
        )
    )
    lead = won_lead("lead-7", 900)
    lead_row = SimpleNamespace(**lead.model_dump())
    monkeypatch.setattr(leads_repo, "get_by_id", AsyncMock(return_value=lead_row))

    outcome = await conversion_service.convert_lead_to_customer(DummySession(), "lead-7")

    assert outcome.created is False
    assert outcome.customer.lead_id == "lead-7"
    assert outcome.customer.total_repairs == 2
    assert outcome.customer.lifetime_value == 2500


@pytest.mark.asyncio
async def test_manual_conversion_twice_is_a_conflict(customers, audit_entries, monkeypatch):
    lead_row = SimpleNamespace(**won_lead("lead-7", 900).model_dump())
    monkeypatch.setattr(leads_repo, "get_by_id", AsyncMock(return_value=lead_row))

    first = await conversion_service.convert_lead_to_customer(DummySession(), "lead-7")
    assert first.created is True
    assert first.customer.lifetime_value == 0

    with pytest.raises(ConflictError):
        await conversion_service.convert_lead_to_customer(DummySession(), "lead-7")

    assert len(customers.rows) == 1


@pytest.mark.asyncio
async def test_manual_conversion_missing_lead(customers, monkeypatch):
    monkeypatch.setattr(leads_repo, "get_by_id", AsyncMock(return_value=None))

    with pytest.raises(NotFoundError):
        await conversion_service.convert_lead_to_customer(DummySession(), "missing")
