"""
Booking Orchestrator - Service-level entry points for the booking core.

Each mutating operation (create, reschedule, cancel, slot generation, slot
blocking, service deactivation) runs in exactly one database transaction:
- The session is opened from the injected session factory
- The domain operation runs inside session.begin(), on a connection
  flagged as a writer (BEGIN IMMEDIATE on SQLite)
- Commit on success; any exception rolls the whole unit back

Read operations (get, list, stats, availability) use a plain session with no
explicit transaction and take no write lock.

Domain failures come back as BookingResult values rather than exceptions.
The error kind is preserved exactly; store-level conflicts (unique index
violations, lock/serialization failures) are reported as CONFLICT so the
client re-queries and resubmits. Anything else is INTERNAL, logged with its
traceback and never exposed to the caller.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking.services.appointment_query_service import (
    AppointmentPage,
    AppointmentQueryService,
    AppointmentStats,
)
from booking.services.appointment_service import AppointmentService
from booking.services.service_catalog import deactivate_service
from booking.services.slot_inventory import SlotInventory
from booking.validators.temporal_policy import TemporalPolicy
from database.connection import acquire_write_lock
from database.models import Appointment, AppointmentStatus, Service, TimeSlot
from shared.errors import (
    AuthorizationError,
    BookingError,
    ConflictError,
    ErrorKind,
    NotFoundError,
    ValidationError,
)
from shared.identity import Identity
from shared.time_utils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_CLASSES: dict[ErrorKind, type[BookingError]] = {
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.AUTHORIZATION: AuthorizationError,
    ErrorKind.INTERNAL: BookingError,
}

STORE_CONFLICT_MESSAGE = "The booking conflicted with a concurrent change, please refresh and try again"
INTERNAL_ERROR_MESSAGE = "Unexpected error while processing the booking"


@dataclass
class BookingResult(Generic[T]):
    """
    Outcome of an orchestrator operation.

    Success:
        BookingResult(success=True, value=<Appointment | list | ...>)

    Failure:
        BookingResult(success=False, error_kind=ErrorKind.CONFLICT,
                      error_message="Time slot is no longer available")
    """

    success: bool
    value: T | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, value: T) -> "BookingResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(
        cls, kind: ErrorKind, message: str, details: dict[str, Any] | None = None
    ) -> "BookingResult[T]":
        return cls(success=False, error_kind=kind, error_message=message, details=details or {})

    def unwrap(self) -> T:
        """Return the value or raise the BookingError matching error_kind."""
        if self.success:
            return self.value
        raise ERROR_CLASSES[self.error_kind](self.error_message, self.details)


class BookingOrchestrator:
    """
    Composition of slot inventory, appointment state machine and queries
    behind one transaction per mutating request.

    Usage:
        orchestrator = BookingOrchestrator(create_session_factory(engine))
        result = await orchestrator.create_appointment(user_id, service_id, slot_id, "2025-11-08T10:00:00Z")
        if result.success:
            appointment = result.value
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: TemporalPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.policy = policy or TemporalPolicy()
        self.clock = clock
        self.slots = SlotInventory(self.policy, clock)
        self.appointments = AppointmentService(self.slots, self.policy, clock)
        self.queries = AppointmentQueryService()

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    async def _execute(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        transactional: bool,
        **context: Any,
    ) -> BookingResult[T]:
        trace_id = f"{operation}-{uuid4().hex[:8]}"
        log_extra = {"trace_id": trace_id, **{k: str(v) for k, v in context.items() if v is not None}}

        logger.info(f"[{trace_id}] Starting {operation}", extra=log_extra)

        try:
            async with self.session_factory() as session:
                if transactional:
                    async with session.begin():
                        await acquire_write_lock(session)
                        value = await work(session)
                else:
                    value = await work(session)

        except BookingError as e:
            logger.warning(
                f"[{trace_id}] {operation} rejected: {e.kind.value} - {e.message}",
                extra=log_extra,
            )
            return BookingResult.fail(e.kind, e.message, e.details)

        except (IntegrityError, OperationalError) as e:
            logger.warning(
                f"[{trace_id}] {operation} lost a store-level conflict: {type(e).__name__}",
                extra=log_extra,
            )
            return BookingResult.fail(ErrorKind.CONFLICT, STORE_CONFLICT_MESSAGE)

        except SQLAlchemyError:
            logger.error(f"[{trace_id}] Database error in {operation}", extra=log_extra, exc_info=True)
            return BookingResult.fail(ErrorKind.INTERNAL, INTERNAL_ERROR_MESSAGE)

        except Exception:
            logger.error(f"[{trace_id}] Unexpected error in {operation}", extra=log_extra, exc_info=True)
            return BookingResult.fail(ErrorKind.INTERNAL, INTERNAL_ERROR_MESSAGE)

        logger.info(f"[{trace_id}] {operation} succeeded", extra=log_extra)
        return BookingResult.ok(value)

    # ------------------------------------------------------------------
    # Appointment writes
    # ------------------------------------------------------------------

    async def create_appointment(
        self,
        user_id: UUID,
        service_id: UUID,
        time_slot_id: UUID,
        scheduled_at: str | datetime,
        notes: str | None = None,
    ) -> BookingResult[Appointment]:
        async def work(session: AsyncSession) -> Appointment:
            return await self.appointments.create(
                session, user_id, service_id, time_slot_id, scheduled_at, notes
            )

        return await self._execute(
            "create_appointment", work, transactional=True,
            user_id=user_id, time_slot_id=time_slot_id,
        )

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        user_id: UUID,
        new_time_slot_id: UUID | None = None,
        new_scheduled_at: str | datetime | None = None,
        notes: str | None = None,
    ) -> BookingResult[Appointment]:
        async def work(session: AsyncSession) -> Appointment:
            return await self.appointments.reschedule(
                session, appointment_id, user_id, new_time_slot_id, new_scheduled_at, notes
            )

        return await self._execute(
            "reschedule_appointment", work, transactional=True,
            appointment_id=appointment_id, user_id=user_id, time_slot_id=new_time_slot_id,
        )

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        user_id: UUID,
        reason: str | None = None,
    ) -> BookingResult[Appointment]:
        async def work(session: AsyncSession) -> Appointment:
            return await self.appointments.cancel(session, appointment_id, user_id, reason)

        return await self._execute(
            "cancel_appointment", work, transactional=True,
            appointment_id=appointment_id, user_id=user_id,
        )

    # ------------------------------------------------------------------
    # Appointment reads
    # ------------------------------------------------------------------

    async def get_appointment(
        self, appointment_id: UUID, caller: Identity | None = None
    ) -> BookingResult[Appointment]:
        """
        Readable by its customer, by the provider it is booked with, and by admins.
        Without a caller no ownership check is made.
        """
        async def work(session: AsyncSession) -> Appointment:
            appointment = await self.queries.get_by_id(session, appointment_id)
            if (
                caller is None
                or appointment.user_id == caller.user_id
                or caller.acts_for_provider(appointment.provider_id)
            ):
                return appointment
            raise AuthorizationError("Access denied to this appointment")

        return await self._execute(
            "get_appointment", work, transactional=False, appointment_id=appointment_id,
        )

    async def list_user_appointments(
        self,
        user_id: UUID,
        status: AppointmentStatus | str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> BookingResult[AppointmentPage]:
        async def work(session: AsyncSession) -> AppointmentPage:
            return await self.queries.list_for_user(session, user_id, status, page, limit)

        return await self._execute(
            "list_user_appointments", work, transactional=False, user_id=user_id,
        )

    async def list_provider_appointments(
        self,
        provider_id: UUID,
        status: AppointmentStatus | str | None = None,
        page: int = 1,
        limit: int = 10,
        caller: Identity | None = None,
    ) -> BookingResult[AppointmentPage]:
        async def work(session: AsyncSession) -> AppointmentPage:
            if caller is not None and not caller.acts_for_provider(provider_id):
                raise AuthorizationError("You can only view your own appointments")
            return await self.queries.list_for_provider(session, provider_id, status, page, limit)

        return await self._execute(
            "list_provider_appointments", work, transactional=False, provider_id=provider_id,
        )

    async def appointment_stats(
        self, user_id: UUID | None = None, provider_id: UUID | None = None
    ) -> BookingResult[AppointmentStats]:
        async def work(session: AsyncSession) -> AppointmentStats:
            return await self.queries.stats(session, user_id, provider_id)

        return await self._execute(
            "appointment_stats", work, transactional=False,
            user_id=user_id, provider_id=provider_id,
        )

    # ------------------------------------------------------------------
    # Slot inventory
    # ------------------------------------------------------------------

    async def find_available_slots(
        self,
        day: date | str,
        service_id: UUID | None = None,
        provider_id: UUID | None = None,
    ) -> BookingResult[list[TimeSlot]]:
        """Availability scoped by exactly one of service_id or provider_id."""
        async def work(session: AsyncSession) -> list[TimeSlot]:
            if (service_id is None) == (provider_id is None):
                raise ValidationError("Exactly one of service_id or provider_id is required")
            if service_id is not None:
                return await self.slots.available_for_service(session, service_id, day)
            return await self.slots.available_for_provider(session, provider_id, day)

        return await self._execute(
            "find_available_slots", work, transactional=False, provider_id=provider_id,
        )

    async def create_slots(
        self,
        provider_id: UUID,
        day: date | str,
        start_time: time | str,
        end_time: time | str,
        slot_duration_minutes: int | None = None,
        caller: Identity | None = None,
    ) -> BookingResult[list[TimeSlot]]:
        async def work(session: AsyncSession) -> list[TimeSlot]:
            if caller is not None and not caller.acts_for_provider(provider_id):
                raise AuthorizationError("You can only create time slots for your own services")
            return await self.slots.generate_slots(
                session, provider_id, day, start_time, end_time, slot_duration_minutes
            )

        return await self._execute(
            "create_slots", work, transactional=True, provider_id=provider_id,
        )

    async def set_slot_blocked(
        self, slot_id: UUID, blocked: bool, caller: Identity
    ) -> BookingResult[TimeSlot]:
        async def work(session: AsyncSession) -> TimeSlot:
            if caller.is_admin:
                return await self.slots.set_blocked(session, slot_id, None, blocked)
            if caller.provider_id is None:
                raise AuthorizationError("Only providers can manage time slots")
            return await self.slots.set_blocked(session, slot_id, caller.provider_id, blocked)

        return await self._execute(
            "set_slot_blocked", work, transactional=True, time_slot_id=slot_id,
        )

    # ------------------------------------------------------------------
    # Service catalog
    # ------------------------------------------------------------------

    async def deactivate_service(
        self, service_id: UUID, caller: Identity
    ) -> BookingResult[Service]:
        async def work(session: AsyncSession) -> Service:
            if caller.is_admin:
                return await deactivate_service(session, service_id, None)
            if caller.provider_id is None:
                raise AuthorizationError("Only providers can manage services")
            return await deactivate_service(session, service_id, caller.provider_id)

        return await self._execute(
            "deactivate_service", work, transactional=True, provider_id=caller.provider_id,
        )
