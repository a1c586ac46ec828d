"""
API routes for appointments.

Every handler delegates to BookingOrchestrator and unwraps its BookingResult;
failures propagate as BookingError and are rendered by the handler in
api.main as {"error": kind, "message": text}.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from api.dependencies import IdentityDep, OrchestratorDep, result_or_raise
from api.models.booking import (
    ERROR_RESPONSES,
    AppointmentCancelRequest,
    AppointmentCreateRequest,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatsResponse,
    AppointmentUpdateRequest,
)
from booking.services.appointment_query_service import DEFAULT_PAGE_SIZE
from shared.errors import AuthorizationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"], responses=ERROR_RESPONSES)


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreateRequest,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
):
    """
    Book a time slot for a service.

    **Errors:**
    - **400**: Past date, lead time not met, inactive service
    - **404**: Service or slot not found
    - **409**: Slot already taken
    """
    result = await orchestrator.create_appointment(
        user_id=identity.user_id,
        service_id=payload.service_id,
        time_slot_id=payload.time_slot_id,
        scheduled_at=payload.scheduled_at,
        notes=payload.notes,
    )
    return result_or_raise(result)


@router.get("", response_model=AppointmentListResponse)
async def list_my_appointments(
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
):
    """Appointments of the caller, newest first."""
    result = await orchestrator.list_user_appointments(
        identity.user_id, status=status_filter, page=page, limit=limit
    )
    return AppointmentListResponse.model_validate(result_or_raise(result))


@router.get("/stats", response_model=AppointmentStatsResponse)
async def get_appointment_stats(
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
    provider_id: UUID | None = None,
):
    """
    Counts per status and completion rate.

    Without provider_id the caller's own appointments are counted.
    """
    if provider_id is not None:
        if not identity.acts_for_provider(provider_id):
            raise AuthorizationError("You can only view your own appointments")
        result = await orchestrator.appointment_stats(provider_id=provider_id)
    else:
        result = await orchestrator.appointment_stats(user_id=identity.user_id)
    return AppointmentStatsResponse.model_validate(result_or_raise(result))


@router.get("/provider/{provider_id}", response_model=AppointmentListResponse)
async def list_provider_appointments(
    provider_id: UUID,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
):
    """Appointments booked with a provider, oldest first. Provider itself or admin only."""
    result = await orchestrator.list_provider_appointments(
        provider_id, status=status_filter, page=page, limit=limit, caller=identity
    )
    return AppointmentListResponse.model_validate(result_or_raise(result))


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: UUID,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
):
    result = await orchestrator.get_appointment(appointment_id, caller=identity)
    return result_or_raise(result)


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: UUID,
    payload: AppointmentUpdateRequest,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
):
    """
    Move an appointment to another slot and/or change its notes.

    **Errors:**
    - **400**: Only one of time_slot_id/scheduled_at, past date, terminal appointment
    - **403**: Not the owner
    - **404**: Appointment or slot not found
    - **409**: Target slot taken
    """
    result = await orchestrator.reschedule_appointment(
        appointment_id,
        identity.user_id,
        new_time_slot_id=payload.time_slot_id,
        new_scheduled_at=payload.scheduled_at,
        notes=payload.notes,
    )
    return result_or_raise(result)


@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: UUID,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
    payload: AppointmentCancelRequest | None = None,
):
    """Cancel an appointment and release its slot."""
    result = await orchestrator.cancel_appointment(
        appointment_id, identity.user_id, reason=payload.reason if payload else None
    )
    return result_or_raise(result)


@router.delete("/{appointment_id}", response_model=AppointmentResponse)
async def delete_appointment(
    appointment_id: UUID,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
):
    """Same as PATCH /{appointment_id}/cancel without a reason."""
    result = await orchestrator.cancel_appointment(appointment_id, identity.user_id)
    return result_or_raise(result)
