"""
Service catalog operations that affect bookings.

Only soft deletion lives here: a service may be deactivated only while no
active appointment references it.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import ACTIVE_STATUSES, Appointment, Service
from shared.errors import AuthorizationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def deactivate_service(
    session: AsyncSession, service_id: UUID, provider_id: UUID | None
) -> Service:
    """
    Soft-delete a service (is_active=False).

    Args:
        session: Session inside an open transaction
        service_id: Service to deactivate
        provider_id: Acting provider; None means an admin acting on any provider

    Raises:
        NotFoundError: Service does not exist
        AuthorizationError: Service belongs to another provider
        ValidationError: Service still has pending or confirmed appointments
    """
    result = await session.execute(
        select(Service).where(Service.id == service_id).with_for_update()
    )
    service = result.scalar_one_or_none()

    if service is None:
        raise NotFoundError("Service not found", details={"service_id": str(service_id)})

    if provider_id is not None and service.provider_id != provider_id:
        raise AuthorizationError("You can only modify your own services")

    active = await session.execute(
        select(Appointment.id)
        .where(
            Appointment.service_id == service_id,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .limit(1)
    )
    if active.scalar_one_or_none() is not None:
        raise ValidationError("Cannot delete service with pending or confirmed appointments")

    service.is_active = False
    await session.flush()

    logger.info(
        f"Service deactivated: {service.name}",
        extra={"provider_id": str(service.provider_id)},
    )
    return service
