"""
Appointment state machine - Create, reschedule and cancel appointments.

States:
    PENDING (initial) -> CONFIRMED          (external approval)
    PENDING/CONFIRMED -> CANCELLED          (cancel, cutoff-gated)
    PENDING/CONFIRMED -> COMPLETED          (external sweep)
    CANCELLED, COMPLETED                    (terminal)

Rescheduling is not a state: it swaps the slot and timestamp of an active
appointment and keeps its status.

Every operation runs against the session it is given, which must already be
inside a transaction. Slot state changes go through SlotInventory so the
claim/recheck happens under a row lock.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from booking.services.appointment_query_service import load_appointment
from booking.services.slot_inventory import SlotInventory
from booking.validators.temporal_policy import TemporalPolicy
from database.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    Service,
)
from shared.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from shared.time_utils import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}
    ),
    **{status: frozenset() for status in TERMINAL_STATUSES},
}


def ensure_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    """
    Raise ValidationError unless current -> target is a legal transition.
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(
            f"Cannot move appointment from {current.value} to {target.value}",
            details={"current_status": current.value, "target_status": target.value},
        )


class AppointmentService:
    """
    Lifecycle operations for appointments.

    Usage:
        service = AppointmentService(SlotInventory())
        async with session.begin():
            appointment = await service.create(session, user_id, ...)
    """

    def __init__(
        self,
        slots: SlotInventory,
        policy: TemporalPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.slots = slots
        self.policy = policy or slots.policy
        self.clock = clock

    async def create(
        self,
        session: AsyncSession,
        user_id: UUID,
        service_id: UUID,
        time_slot_id: UUID,
        scheduled_at: str | datetime,
        notes: str | None = None,
    ) -> Appointment:
        """
        Book a slot for a service.

        Steps:
        1. Validate the timestamp (well-formed, not in the past)
        2. Load service under a shared row lock; must exist and be active with
           an active provider. The lock serialises with deactivate_service.
        3. Load slot; must exist, belong to the service's provider, be available
        4. Enforce the minimum lead time on the slot start
        5. Claim the slot under lock and insert a PENDING appointment with a
           price snapshot

        Raises:
            ValidationError, NotFoundError, ConflictError
        """
        now = self.clock()

        scheduled = parse_timestamp(scheduled_at)
        if scheduled < now:
            raise ValidationError("Appointment date cannot be in the past")

        result = await session.execute(
            select(Service)
            .options(selectinload(Service.provider))
            .where(Service.id == service_id)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        )
        service = result.scalar_one_or_none()

        if service is None:
            raise NotFoundError("Service not found", details={"service_id": str(service_id)})
        if not service.is_active:
            raise ValidationError("Service is not currently available")
        if not service.provider.is_active:
            raise ValidationError("Provider is not currently available")

        slot = await self.slots.get_slot(session, time_slot_id)

        if slot is None:
            raise NotFoundError("Time slot not found", details={"time_slot_id": str(time_slot_id)})
        if slot.provider_id != service.provider_id:
            raise NotFoundError("Time slot not found for this service provider")
        if not slot.is_available or slot.is_blocked:
            raise ConflictError("Time slot is no longer available")

        if not self.policy.can_book(slot.start_time, now):
            lead_minutes = int(self.policy.min_lead_time.total_seconds() // 60)
            raise ValidationError(
                f"Cannot book appointments less than {lead_minutes} minutes in advance",
                details={"slot_start": slot.start_time.isoformat()},
            )

        await self.slots.claim(session, slot.id)

        appointment = Appointment(
            user_id=user_id,
            provider_id=service.provider_id,
            service_id=service.id,
            time_slot_id=slot.id,
            scheduled_at=scheduled,
            status=AppointmentStatus.PENDING,
            total_price=service.price,
            notes=notes,
        )
        session.add(appointment)
        await session.flush()

        logger.info(
            "Appointment created (PENDING)",
            extra={
                "appointment_id": str(appointment.id),
                "time_slot_id": str(slot.id),
                "user_id": str(user_id),
            },
        )
        return await load_appointment(session, appointment.id)

    async def reschedule(
        self,
        session: AsyncSession,
        appointment_id: UUID,
        user_id: UUID,
        new_time_slot_id: UUID | None = None,
        new_scheduled_at: str | datetime | None = None,
        notes: str | None = None,
    ) -> Appointment:
        """
        Move an active appointment to another slot of the same provider.

        Without a new slot and timestamp this only updates the notes. Both
        must be given together to reschedule.

        Raises:
            NotFoundError: Appointment or slot missing, slot of another provider
            AuthorizationError: Caller does not own the appointment
            ValidationError: Terminal status, partial input, bad/past timestamp
            ConflictError: New slot unavailable or already booked
        """
        appointment = await self._load_owned(session, appointment_id, user_id)

        if appointment.status not in ACTIVE_STATUSES:
            raise ValidationError("Cannot modify cancelled or completed appointments")

        if new_time_slot_id is None and new_scheduled_at is None:
            if notes is not None:
                appointment.notes = notes
                await session.flush()
            return await load_appointment(session, appointment.id)

        if new_time_slot_id is None or new_scheduled_at is None:
            raise ValidationError(
                "Both time_slot_id and scheduled_at are required for rescheduling"
            )

        new_slot = await self.slots.get_slot(session, new_time_slot_id)

        if new_slot is None:
            raise NotFoundError("Time slot not found", details={"time_slot_id": str(new_time_slot_id)})
        if new_slot.provider_id != appointment.provider_id:
            raise NotFoundError("Time slot not found for this service provider")
        if not new_slot.is_available or new_slot.is_blocked:
            raise ConflictError("Selected time slot is not available")

        scheduled = parse_timestamp(new_scheduled_at)
        if scheduled < self.clock():
            raise ValidationError("Cannot reschedule to a past date")

        if await self.slots.has_active_appointment(
            session, new_slot.id, exclude_appointment_id=appointment.id
        ):
            raise ConflictError("An appointment already exists for this time slot")

        old_slot_id = appointment.time_slot_id

        await self.slots.release(session, old_slot_id)
        await self.slots.claim(session, new_slot.id)

        appointment.time_slot_id = new_slot.id
        appointment.scheduled_at = scheduled
        if notes is not None:
            appointment.notes = notes
        await session.flush()

        logger.info(
            "Appointment rescheduled",
            extra={
                "appointment_id": str(appointment.id),
                "time_slot_id": str(new_slot.id),
                "user_id": str(user_id),
            },
        )
        return await load_appointment(session, appointment.id)

    async def cancel(
        self,
        session: AsyncSession,
        appointment_id: UUID,
        user_id: UUID,
        reason: str | None = None,
    ) -> Appointment:
        """
        Cancel an active appointment and release its slot.

        Raises:
            NotFoundError: Appointment missing
            AuthorizationError: Caller does not own the appointment
            ValidationError: Already terminal, or inside the cancellation cutoff
        """
        appointment = await self._load_owned(session, appointment_id, user_id)

        if appointment.status not in ACTIVE_STATUSES:
            raise ValidationError("Cannot cancel already cancelled or completed appointments")

        now = self.clock()
        if not self.policy.can_cancel(appointment.scheduled_at, now):
            cutoff_hours = int(self.policy.cancel_cutoff.total_seconds() // 3600)
            raise ValidationError(
                f"Appointments can only be cancelled at least {cutoff_hours} hours in advance",
                details={"scheduled_at": appointment.scheduled_at.isoformat()},
            )

        ensure_transition(appointment.status, AppointmentStatus.CANCELLED)
        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancel_reason = reason
        appointment.cancelled_at = now
        await session.flush()

        await self.slots.release(session, appointment.time_slot_id)

        logger.info(
            "Appointment cancelled",
            extra={
                "appointment_id": str(appointment.id),
                "time_slot_id": str(appointment.time_slot_id),
                "user_id": str(user_id),
            },
        )
        return await load_appointment(session, appointment.id)

    async def _load_owned(
        self, session: AsyncSession, appointment_id: UUID, user_id: UUID
    ) -> Appointment:
        # Row lock so concurrent cancel/reschedule of one appointment serialise
        result = await session.execute(
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        appointment = result.scalar_one_or_none()

        if appointment is None:
            raise NotFoundError("Appointment not found", details={"appointment_id": str(appointment_id)})

        if appointment.user_id != user_id:
            raise AuthorizationError("Access denied to this appointment")

        return appointment
