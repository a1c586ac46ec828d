"""
SQLAlchemy ORM models for the booking database.

This module defines the tables:
- users: Customers, providers and admins (owned by the auth service)
- providers: Businesses offering services and owning time slots
- services: Bookable services with pricing and duration
- time_slots: Fixed bookable windows per provider
- appointments: Booking records linking user, provider, service and slot

All models use:
- UUID primary keys (auto-generated)
- UTCDateTime for datetime fields (always timezone-aware UTC)
- Proper indexes and constraints
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# ============================================================================
# Column Types
# ============================================================================


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp on every backend.

    PostgreSQL stores TIMESTAMP WITH TIME ZONE. SQLite has no timezone
    support, so values are stored as naive UTC and re-tagged on load.
    Naive datetimes are rejected on bind.
    """

    impl = DateTime
    cache_ok = True

    def __init__(self) -> None:
        super().__init__(timezone=True)

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime {value!r} cannot be stored, attach a timezone")
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class UserRole(str, PyEnum):
    """Role of an authenticated identity."""

    CUSTOMER = "CUSTOMER"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"


class AppointmentStatus(PyEnum):
    """Appointment lifecycle status."""

    PENDING = "pending"        # Initial state after booking
    CONFIRMED = "confirmed"    # Approved by an external collaborator
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    def __str__(self):
        return self.value


ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
TERMINAL_STATUSES = (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED)

# Shared by the partial unique index and raw SQL filters
ACTIVE_STATUS_SQL = "status IN ('pending', 'confirmed')"


# ============================================================================
# Core Models
# ============================================================================


class User(Base):
    """
    User model - Identity record maintained by the auth service.

    Only the fields needed for ownership checks are mapped here.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role"),
        default=UserRole.CUSTOMER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)

    provider: Mapped[Optional["Provider"]] = relationship("Provider", back_populates="user", uselist=False)
    appointments: Mapped[list["Appointment"]] = relationship("Appointment", back_populates="user")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"


class Provider(Base):
    """
    Provider model - Business offering services.

    Owns its services and its time slot inventory.
    """

    __tablename__ = "providers"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
    )
    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="provider")
    services: Mapped[list["Service"]] = relationship("Service", back_populates="provider")
    time_slots: Mapped[list["TimeSlot"]] = relationship("TimeSlot", back_populates="provider")

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, business_name='{self.business_name}')>"


class Service(Base):
    """
    Service model - Bookable service with price and duration.

    Soft-deleted through is_active; never removed while an active
    appointment references it.
    """

    __tablename__ = "services"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    provider: Mapped["Provider"] = relationship("Provider", back_populates="services")

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        CheckConstraint("price >= 0", name="check_service_price_non_negative"),
        Index(
            "idx_services_provider_active",
            "provider_id",
            postgresql_where=text("is_active = true"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}')>"


# ============================================================================
# Scheduling Models
# ============================================================================


class TimeSlot(Base):
    """
    TimeSlot model - A fixed bookable window owned by one provider.

    A slot is claimable only when is_available, not is_blocked and no
    active appointment references it.
    """

    __tablename__ = "time_slots"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    provider: Mapped["Provider"] = relationship("Provider", back_populates="time_slots")
    appointments: Mapped[list["Appointment"]] = relationship("Appointment", back_populates="time_slot")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_slot_start_before_end"),
        UniqueConstraint("provider_id", "start_time", "end_time", name="uq_time_slots_provider_window"),
        Index("idx_time_slots_provider_start", "provider_id", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<TimeSlot(id={self.id}, start='{self.start_time.isoformat()}', available={self.is_available})>"


class Appointment(Base):
    """
    Appointment model - Booking of one slot by one user for one service.

    Never deleted: cancelled and completed appointments remain as history.
    total_price is a snapshot of the service price at booking time.
    """

    __tablename__ = "appointments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign keys
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    service_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    time_slot_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Scheduling
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Note: values_callable stores the enum .value ("pending"), which the
    # partial unique index below relies on
    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(
            AppointmentStatus,
            name="appointment_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=AppointmentStatus.PENDING,
        nullable=False,
        index=True,
    )

    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="appointments")
    service: Mapped["Service"] = relationship("Service")
    time_slot: Mapped["TimeSlot"] = relationship("TimeSlot", back_populates="appointments")

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="check_appointment_price_non_negative"),
        # At most one active appointment per slot, enforced by the store
        Index(
            "uq_appointments_active_time_slot",
            "time_slot_id",
            unique=True,
            postgresql_where=text(ACTIVE_STATUS_SQL),
            sqlite_where=text(ACTIVE_STATUS_SQL),
        ),
        Index("idx_appointments_provider_status", "provider_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, user_id={self.user_id}, status='{self.status.value}')>"
