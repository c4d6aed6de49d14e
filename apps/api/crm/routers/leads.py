"""Lead lifecycle endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..models.activity import ActivityEntity
from ..schemas import leads as leads_schema
from ..services import activity as activity_service
from ..services import conversion as conversion_service
from ..services import leads as leads_service

router = APIRouter()


@router.post("", response_model=leads_schema.LeadSnapshot, status_code=status.HTTP_201_CREATED)
async def create_lead(
    payload: leads_schema.LeadCreateRequest,
    actor_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> leads_schema.LeadSnapshot:
    """Register a new inbound repair inquiry."""

    return await leads_service.create_lead(session, payload, actor_id=actor_id)


@router.get("/{lead_id}", response_model=leads_schema.LeadSnapshot)
async def get_lead(lead_id: str, session: AsyncSession = Depends(get_session)) -> leads_schema.LeadSnapshot:
    return await leads_service.get_lead(session, lead_id)


@router.patch("/{lead_id}", response_model=leads_schema.LeadSnapshot)
async def update_lead(
    lead_id: str,
    payload: leads_schema.LeadUpdateRequest,
    actor_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> leads_schema.LeadSnapshot:
    return await leads_service.update_lead(session, lead_id, payload, actor_id=actor_id)


@router.post("/{lead_id}/status", response_model=leads_schema.StatusChangeResponse)
async def change_status(
    lead_id: str,
    payload: leads_schema.StatusChangeRequest,
    session: AsyncSession = Depends(get_session),
) -> leads_schema.StatusChangeResponse:
    """Move a lead through its workflow."""

    result = await leads_service.change_status(session, lead_id, payload.status, actor_id=payload.actor_id)
    return leads_schema.StatusChangeResponse(converted=result.converted, lead=result.lead)


@router.post("/{lead_id}/assign", response_model=leads_schema.LeadSnapshot)
async def assign_lead(
    lead_id: str,
    payload: leads_schema.AssignRequest,
    session: AsyncSession = Depends(get_session),
) -> leads_schema.LeadSnapshot:
    return await leads_service.assign_lead(session, lead_id, payload.staff_id, actor_id=payload.actor_id)


@router.post("/{lead_id}/quote", response_model=leads_schema.LeadSnapshot)
async def update_quote(
    lead_id: str,
    payload: leads_schema.QuoteRequest,
    session: AsyncSession = Depends(get_session),
) -> leads_schema.LeadSnapshot:
    return await leads_service.update_quoted_amount(session, lead_id, payload.amount, actor_id=payload.actor_id)


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lead(
    lead_id: str,
    actor_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> None:
    await leads_service.delete_lead(session, lead_id, actor_id=actor_id)


@router.post("/{lead_id}/convert", response_model=leads_schema.ConvertResponse)
async def convert_lead(
    lead_id: str,
    actor_id: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> leads_schema.ConvertResponse:
    """Manually turn a lead into a customer."""

    outcome = await conversion_service.convert_lead_to_customer(session, lead_id, actor_id=actor_id)
    return leads_schema.ConvertResponse(customer_id=outcome.customer.id)


@router.get("/{lead_id}/customer", response_model=leads_schema.CustomerRead | None)
async def get_lead_customer(
    lead_id: str,
    session: AsyncSession = Depends(get_session),
) -> leads_schema.CustomerRead | None:
    return await conversion_service.get_customer_for_lead(session, lead_id)


@router.get("/{lead_id}/activity", response_model=list[leads_schema.ActivityEntryRead])
async def get_lead_activity(
    lead_id: str,
    session: AsyncSession = Depends(get_session),
) -> list[leads_schema.ActivityEntryRead]:
    return await activity_service.list_entity_activity(session, ActivityEntity.LEAD, lead_id)
