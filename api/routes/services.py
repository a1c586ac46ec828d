"""API routes for the booking-relevant part of the service catalog."""

import logging
from uuid import UUID

from fastapi import APIRouter

from api.dependencies import IdentityDep, OrchestratorDep, result_or_raise
from api.models.booking import ERROR_RESPONSES, ServiceSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["services"], responses=ERROR_RESPONSES)


@router.delete("/{service_id}", response_model=ServiceSummary)
async def deactivate_service(
    service_id: UUID,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
):
    """
    Soft-delete a service so it can no longer be booked.

    Refused with 400 while the service has pending or confirmed appointments.
    """
    result = await orchestrator.deactivate_service(service_id, identity)
    return result_or_raise(result)
