"""
Appointment query service - Read-only projections over appointments.

Provides:
- Single appointment lookup with ownership check
- Paginated listings per customer and per provider, with status filter
- Status aggregation with completion rate

No locking and no transaction: listings may be slightly stale, claim-time
checks in the write path are authoritative.
"""

import logging
import math
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.models import Appointment, AppointmentStatus
from shared.errors import AuthorizationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


@dataclass
class Pagination:
    total: int
    page: int
    limit: int
    pages: int


@dataclass
class AppointmentPage:
    """One page of appointments plus pagination metadata."""

    items: list[Appointment] = field(default_factory=list)
    pagination: Pagination | None = None


@dataclass
class AppointmentStats:
    """
    Appointment counts per status.

    completion_rate is completed/total as a percentage with two decimals
    ("25.00"), and "0.00" when there are no appointments.
    """

    total: int = 0
    pending: int = 0
    confirmed: int = 0
    cancelled: int = 0
    completed: int = 0
    completion_rate: str = "0.00"


def parse_status(status: AppointmentStatus | str | None) -> AppointmentStatus | None:
    """Accept an enum member or its value/name in any case."""
    if status is None or isinstance(status, AppointmentStatus):
        return status
    try:
        return AppointmentStatus(status.strip().lower())
    except ValueError:
        raise ValidationError(
            f"Unknown appointment status: {status}",
            details={"allowed": [s.value for s in AppointmentStatus]},
        ) from None


async def load_appointment(session: AsyncSession, appointment_id: UUID) -> Appointment | None:
    """Fetch an appointment with its service and time slot loaded."""
    stmt = (
        select(Appointment)
        .options(
            selectinload(Appointment.service),
            selectinload(Appointment.time_slot),
        )
        .where(Appointment.id == appointment_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


class AppointmentQueryService:
    """Read projections used by BookingOrchestrator."""

    async def get_by_id(
        self,
        session: AsyncSession,
        appointment_id: UUID,
        caller_user_id: UUID | None = None,
    ) -> Appointment:
        """
        Get an appointment, optionally checking that the caller owns it.

        Raises:
            NotFoundError: Appointment does not exist
            AuthorizationError: caller_user_id given and not the owner
        """
        appointment = await load_appointment(session, appointment_id)

        if appointment is None:
            raise NotFoundError("Appointment not found", details={"appointment_id": str(appointment_id)})

        if caller_user_id is not None and appointment.user_id != caller_user_id:
            raise AuthorizationError("Access denied to this appointment")

        return appointment

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: UUID,
        status: AppointmentStatus | str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> AppointmentPage:
        """Customer history, newest bookings first."""
        return await self._paginate(
            session,
            Appointment.user_id == user_id,
            parse_status(status),
            page,
            limit,
            Appointment.created_at.desc(),
        )

    async def list_for_provider(
        self,
        session: AsyncSession,
        provider_id: UUID,
        status: AppointmentStatus | str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> AppointmentPage:
        """Provider agenda, oldest bookings first."""
        return await self._paginate(
            session,
            Appointment.provider_id == provider_id,
            parse_status(status),
            page,
            limit,
            Appointment.created_at.asc(),
        )

    async def _paginate(self, session, owner_clause, status, page, limit, ordering) -> AppointmentPage:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive integers")

        conditions = [owner_clause]
        if status is not None:
            conditions.append(Appointment.status == status)

        total_result = await session.execute(
            select(func.count()).select_from(Appointment).where(*conditions)
        )
        total = total_result.scalar() or 0

        result = await session.execute(
            select(Appointment)
            .options(
                selectinload(Appointment.service),
                selectinload(Appointment.time_slot),
            )
            .where(*conditions)
            .order_by(ordering, Appointment.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return AppointmentPage(
            items=list(result.scalars().all()),
            pagination=Pagination(
                total=total,
                page=page,
                limit=limit,
                pages=math.ceil(total / limit),
            ),
        )

    async def stats(
        self,
        session: AsyncSession,
        user_id: UUID | None = None,
        provider_id: UUID | None = None,
    ) -> AppointmentStats:
        """Count appointments per status for a user and/or provider."""
        stmt = select(Appointment.status, func.count()).group_by(Appointment.status)
        if user_id is not None:
            stmt = stmt.where(Appointment.user_id == user_id)
        if provider_id is not None:
            stmt = stmt.where(Appointment.provider_id == provider_id)

        result = await session.execute(stmt)
        counts = {status: count for status, count in result.all()}

        total = sum(counts.values())
        completed = counts.get(AppointmentStatus.COMPLETED, 0)
        rate = completed / total * 100 if total else 0

        return AppointmentStats(
            total=total,
            pending=counts.get(AppointmentStatus.PENDING, 0),
            confirmed=counts.get(AppointmentStatus.CONFIRMED, 0),
            cancelled=counts.get(AppointmentStatus.CANCELLED, 0),
            completed=completed,
            completion_rate=f"{rate:.2f}",
        )
