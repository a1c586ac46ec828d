"""
Slot inventory service - Owns the bookable time windows of each provider.

Responsibilities:
- Bulk generation of slots from a daily schedule (idempotent)
- Availability queries (service-scoped and provider-scoped)
- Exclusive claim of a slot under a locking read
- Release of a slot when its appointment is cancelled or moved away
- Blocking/unblocking of a slot by its provider

Every method works on the AsyncSession it is given. Mutating methods expect
that session to be inside a transaction opened by BookingOrchestrator.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from booking.validators.temporal_policy import TemporalPolicy
from database.models import (
    ACTIVE_STATUSES,
    Appointment,
    Provider,
    Service,
    TimeSlot,
)
from shared.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from shared.time_utils import at_utc, day_bounds, parse_clock_time, parse_date, utc_now

logger = logging.getLogger(__name__)


class SlotInventory:
    """
    Time slot inventory for all providers.

    Usage:
        inventory = SlotInventory(policy=TemporalPolicy())
        async with session.begin():
            slot = await inventory.claim(session, slot_id)
    """

    def __init__(
        self,
        policy: TemporalPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.policy = policy or TemporalPolicy()
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_slot(
        self, session: AsyncSession, slot_id: UUID, lock: bool = False
    ) -> TimeSlot | None:
        """
        Fetch a slot by id.

        With lock=True the row is read with SELECT ... FOR UPDATE and the
        identity map is refreshed, so the caller sees the latest committed state.
        """
        stmt = select(TimeSlot).where(TimeSlot.id == slot_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def has_active_appointment(
        self,
        session: AsyncSession,
        slot_id: UUID,
        exclude_appointment_id: UUID | None = None,
    ) -> bool:
        """True if a PENDING/CONFIRMED appointment references the slot."""
        stmt = select(Appointment.id).where(
            Appointment.time_slot_id == slot_id,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        if exclude_appointment_id is not None:
            stmt = stmt.where(Appointment.id != exclude_appointment_id)
        result = await session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def find_available(
        self, session: AsyncSession, provider_id: UUID, day: date
    ) -> list[TimeSlot]:
        """
        Slots of a provider on a UTC day that can still be claimed.

        Returns slots that are available, not blocked and not referenced by an
        active appointment, ordered by start time. No lead-time filtering.
        """
        day_start, day_end = day_bounds(day)
        booked = exists().where(
            Appointment.time_slot_id == TimeSlot.id,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        stmt = (
            select(TimeSlot)
            .where(
                TimeSlot.provider_id == provider_id,
                TimeSlot.start_time >= day_start,
                TimeSlot.start_time < day_end,
                TimeSlot.is_available.is_(True),
                TimeSlot.is_blocked.is_(False),
                ~booked,
            )
            .order_by(TimeSlot.start_time.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def available_for_service(
        self, session: AsyncSession, service_id: UUID, day: date | str
    ) -> list[TimeSlot]:
        """
        Bookable slots for a service on a date.

        Raises:
            NotFoundError: Service does not exist
            ValidationError: Service/provider inactive, bad/past date, beyond horizon
        """
        result = await session.execute(
            select(Service)
            .options(selectinload(Service.provider))
            .where(Service.id == service_id)
        )
        service = result.scalar_one_or_none()

        if service is None:
            raise NotFoundError("Service not found", details={"service_id": str(service_id)})
        if not service.is_active:
            raise ValidationError("Service is not currently active")
        if not service.provider.is_active:
            raise ValidationError("Provider is not currently active")

        return await self._bookable_slots(session, service.provider_id, day)

    async def available_for_provider(
        self, session: AsyncSession, provider_id: UUID, day: date | str
    ) -> list[TimeSlot]:
        """
        Bookable slots for a provider on a date.

        Raises:
            NotFoundError: Provider does not exist
            ValidationError: Provider inactive, bad/past date, beyond horizon
        """
        provider = await session.get(Provider, provider_id)

        if provider is None:
            raise NotFoundError("Provider not found", details={"provider_id": str(provider_id)})
        if not provider.is_active:
            raise ValidationError("Provider is not currently active")

        return await self._bookable_slots(session, provider_id, day)

    async def _bookable_slots(
        self, session: AsyncSession, provider_id: UUID, day: date | str
    ) -> list[TimeSlot]:
        target = parse_date(day)
        now = self.clock()

        if target < now.date():
            raise ValidationError("Cannot view slots for past dates")

        if not self.policy.within_booking_horizon(target, now):
            horizon_days = self.policy.max_horizon.days
            raise ValidationError(
                f"Cannot book appointments more than {horizon_days} days in advance",
                details={"date": target.isoformat(), "horizon_days": horizon_days},
            )

        slots = await self.find_available(session, provider_id, target)
        return [slot for slot in slots if self.policy.can_book(slot.start_time, now)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def generate_slots(
        self,
        session: AsyncSession,
        provider_id: UUID,
        day: date | str,
        start_time: time | str,
        end_time: time | str,
        slot_duration_minutes: int | None = None,
    ) -> list[TimeSlot]:
        """
        Partition [start_time, end_time) on a day into consecutive slots.

        Windows that already exist for the provider are skipped, so calling
        this twice with the same arguments creates nothing the second time.
        A trailing window shorter than slot_duration_minutes is dropped.
        Without slot_duration_minutes the policy default length is used.

        Raises:
            NotFoundError: Provider does not exist
            ValidationError: Bad range, past date, bad duration, or no new slots
        """
        provider = await session.get(Provider, provider_id)
        if provider is None:
            raise NotFoundError("Provider not found", details={"provider_id": str(provider_id)})

        target = parse_date(day)
        opens = parse_clock_time(start_time)
        closes = parse_clock_time(end_time)

        if slot_duration_minutes is None:
            step = self.policy.slot_duration
        else:
            step = timedelta(minutes=slot_duration_minutes)

        if step <= timedelta(0):
            raise ValidationError("Slot duration must be a positive number of minutes")

        if target < self.clock().date():
            raise ValidationError("Cannot create slots for past dates")

        if opens >= closes:
            raise ValidationError("Start time must be before end time")

        window_start = at_utc(target, opens)
        window_end = at_utc(target, closes)

        day_start, day_end = day_bounds(target)
        result = await session.execute(
            select(TimeSlot.start_time, TimeSlot.end_time).where(
                TimeSlot.provider_id == provider_id,
                TimeSlot.start_time >= day_start,
                TimeSlot.start_time < day_end,
            )
        )
        existing = {(row.start_time, row.end_time) for row in result}

        created: list[TimeSlot] = []
        current = window_start
        while current + step <= window_end:
            if (current, current + step) not in existing:
                created.append(
                    TimeSlot(
                        provider_id=provider_id,
                        start_time=current,
                        end_time=current + step,
                        is_available=True,
                        is_blocked=False,
                    )
                )
            current += step

        if not created:
            raise ValidationError("No new time slots to create (slots may already exist)")

        session.add_all(created)
        await session.flush()

        logger.info(
            f"Created {len(created)} time slots for {target.isoformat()}",
            extra={"provider_id": str(provider_id)},
        )
        return created

    async def claim(self, session: AsyncSession, slot_id: UUID) -> TimeSlot:
        """
        Reserve a slot for an appointment.

        Re-reads the slot under a row lock and rechecks it immediately before
        marking it unavailable. Losing a race is reported, never retried.

        Raises:
            NotFoundError: Slot does not exist
            ConflictError: Slot unavailable, blocked or already booked
        """
        slot = await self.get_slot(session, slot_id, lock=True)

        if slot is None:
            raise NotFoundError("Time slot not found", details={"time_slot_id": str(slot_id)})

        if slot.is_blocked or not slot.is_available:
            logger.warning(
                "Claim rejected: slot no longer available",
                extra={"time_slot_id": str(slot_id)},
            )
            raise ConflictError("Time slot is no longer available")

        if await self.has_active_appointment(session, slot_id):
            logger.warning(
                "Claim rejected: slot already has an active appointment",
                extra={"time_slot_id": str(slot_id)},
            )
            raise ConflictError("An appointment already exists for this time slot")

        slot.is_available = False
        await session.flush()
        return slot

    async def release(self, session: AsyncSession, slot_id: UUID) -> TimeSlot:
        """
        Make a slot claimable again after its appointment moved or was cancelled.

        A blocked slot stays unavailable.
        """
        slot = await self.get_slot(session, slot_id, lock=True)

        if slot is None:
            raise NotFoundError("Time slot not found", details={"time_slot_id": str(slot_id)})

        if not slot.is_blocked:
            slot.is_available = True
        await session.flush()
        return slot

    async def set_blocked(
        self,
        session: AsyncSession,
        slot_id: UUID,
        provider_id: UUID | None,
        blocked: bool,
    ) -> TimeSlot:
        """
        Block or unblock a slot on behalf of its provider.

        provider_id None means an admin acting on any provider.

        Raises:
            NotFoundError: Slot does not exist
            AuthorizationError: Slot belongs to another provider
            ValidationError: Blocking a slot that has an active appointment
        """
        slot = await self.get_slot(session, slot_id, lock=True)

        if slot is None:
            raise NotFoundError("Time slot not found", details={"time_slot_id": str(slot_id)})

        if provider_id is not None and slot.provider_id != provider_id:
            raise AuthorizationError("You can only modify your own time slots")

        if blocked and await self.has_active_appointment(session, slot_id):
            raise ValidationError("Cannot block a time slot that has existing appointments")

        slot.is_blocked = blocked
        slot.is_available = not blocked
        await session.flush()

        logger.info(
            f"Time slot {'blocked' if blocked else 'unblocked'}",
            extra={"time_slot_id": str(slot_id), "provider_id": str(provider_id)},
        )
        return slot
