"""Create database schema and seed demo staff and leads for development."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from crm.db.session import SessionLocal, engine
from crm.models.base import Base
from crm.models.lead import Lead, LeadStatus
from crm.models.staff import Staff, StaffRole

STAFF = [
	{"id": "staff-owner", "full_name": "Meera Kapoor", "role": StaffRole.SUPER_ADMIN},
	{"id": "staff-ops", "full_name": "Arjun Nair", "role": StaffRole.OPERATION_MANAGER},
	{"id": "staff-tech", "full_name": "Ravi Iyer", "role": StaffRole.TECHNICIAN},
	{"id": "staff-sales", "full_name": "Priya Menon", "role": StaffRole.SELL_EXECUTIVE},
]

LEADS = [
	{
		"id": "lead-demo-1",
		"customer_name": "Kabir Shah",
		"contact_number": "9876543210",
		"email": "kabir.shah@example.com",
		"device_type": "iPhone",
		"device_model": "iPhone 14 Pro",
		"issue_reported": "Cracked screen",
		"status": LeadStatus.NEW,
		"assigned_to": "staff-sales",
		"quoted_amount": None,
		"age_days": 0,
	},
	{
		"id": "lead-demo-2",
		"customer_name": "Ananya Rao",
		"contact_number": "9123456780",
		"email": None,
		"device_type": "MacBook",
		"device_model": "MacBook Air M2",
		"issue_reported": "Battery not charging",
		"status": LeadStatus.QUOTED,
		"assigned_to": "staff-tech",
		"quoted_amount": 8500,
		"age_days": 3,
	},
	{
		"id": "lead-demo-3",
		"customer_name": "Vikram Das",
		"contact_number": "9988776655",
		"email": "vikram.das@example.com",
		"device_type": "Apple Watch",
		"device_model": "Series 8",
		"issue_reported": "Water damage",
		"status": LeadStatus.INTERESTED,
		"assigned_to": None,
		"quoted_amount": 4000,
		"age_days": 7,
	},
]


async def create_schema() -> None:
	"""Create the database schema if it does not already exist."""

	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)


async def seed_staff() -> None:
	"""Insert or update demo staff members."""

	async with SessionLocal() as session:
		async with session.begin():
			for member in STAFF:
				staff = await session.get(Staff, member["id"])
				if staff is None:
					session.add(Staff(**member))
				else:
					staff.full_name = member["full_name"]
					staff.role = member["role"]


async def seed_leads() -> None:
	"""Insert demo leads that are not present yet."""

	now = datetime.now(timezone.utc)
	async with SessionLocal() as session:
		async with session.begin():
			for data in LEADS:
				if await session.get(Lead, data["id"]) is not None:
					continue
				fields = {key: value for key, value in data.items() if key != "age_days"}
				created_at = now - timedelta(days=data["age_days"])
				session.add(Lead(**fields, created_at=created_at, updated_at=created_at))


async def main() -> None:
	await create_schema()
	await seed_staff()
	await seed_leads()


if __name__ == "__main__":
	asyncio.run(main())
