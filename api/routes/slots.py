"""
API routes for time slot availability and management.

Availability is public and needs no token; creating and blocking slots
is restricted to the owning provider or an admin (checked by the
orchestrator).
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from api.dependencies import IdentityDep, OrchestratorDep, result_or_raise
from api.models.booking import (
    ERROR_RESPONSES,
    SlotBlockRequest,
    SlotCreateRequest,
    TimeSlotResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["slots"], responses=ERROR_RESPONSES)


@router.get("/services/{service_id}/slots", response_model=list[TimeSlotResponse])
async def get_service_slots(
    service_id: UUID,
    day: Annotated[str, Query(alias="date", description="YYYY-MM-DD")],
    orchestrator: OrchestratorDep,
):
    """Bookable slots for a service on a date, ordered by start time."""
    result = await orchestrator.find_available_slots(day, service_id=service_id)
    return result_or_raise(result)


@router.get("/providers/{provider_id}/slots", response_model=list[TimeSlotResponse])
async def get_provider_slots(
    provider_id: UUID,
    day: Annotated[str, Query(alias="date", description="YYYY-MM-DD")],
    orchestrator: OrchestratorDep,
):
    """Bookable slots for a provider on a date, ordered by start time."""
    result = await orchestrator.find_available_slots(day, provider_id=provider_id)
    return result_or_raise(result)


@router.post(
    "/providers/{provider_id}/slots",
    response_model=list[TimeSlotResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_provider_slots(
    provider_id: UUID,
    payload: SlotCreateRequest,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
):
    """
    Generate consecutive slots between start_time and end_time on a date.

    **Errors:**
    - **400**: Past date, start not before end, or every window already exists
    - **403**: Not this provider
    - **404**: Provider not found
    """
    result = await orchestrator.create_slots(
        provider_id,
        payload.date,
        payload.start_time,
        payload.end_time,
        slot_duration_minutes=payload.slot_duration,
        caller=identity,
    )
    return result_or_raise(result)


@router.patch("/slots/{slot_id}/block", response_model=TimeSlotResponse)
async def block_slot(
    slot_id: UUID,
    payload: SlotBlockRequest,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
):
    """Block or unblock a slot. A slot with an active appointment cannot be blocked."""
    result = await orchestrator.set_slot_blocked(slot_id, payload.is_blocked, identity)
    return result_or_raise(result)
