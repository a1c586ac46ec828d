"""Pydantic request/response models for the booking API."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from database.models import AppointmentStatus


# =============================================================================
# Requests
# =============================================================================


class AppointmentCreateRequest(BaseModel):
    service_id: UUID
    time_slot_id: UUID
    # Kept as text so naive/malformed timestamps are rejected by the domain layer
    scheduled_at: str
    notes: str | None = Field(default=None, max_length=2000)


class AppointmentUpdateRequest(BaseModel):
    """
    Reschedule and/or change notes.

    time_slot_id and scheduled_at must be given together; with neither only
    the notes are updated.
    """

    time_slot_id: UUID | None = None
    scheduled_at: str | None = None
    notes: str | None = Field(default=None, max_length=2000)


class AppointmentCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class SlotCreateRequest(BaseModel):
    date: str  # YYYY-MM-DD
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    # None means the configured DEFAULT_SLOT_DURATION_MINUTES
    slot_duration: int | None = Field(default=None, ge=1, le=24 * 60)


class SlotBlockRequest(BaseModel):
    is_blocked: bool


# =============================================================================
# Responses
# =============================================================================


class TimeSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_id: UUID
    start_time: datetime
    end_time: datetime
    is_available: bool
    is_blocked: bool


class ServiceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    duration_minutes: int
    price: Decimal
    category: str | None = None
    is_active: bool


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    provider_id: UUID
    service_id: UUID
    time_slot_id: UUID
    scheduled_at: datetime
    status: AppointmentStatus
    total_price: Decimal
    notes: str | None = None
    cancel_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    service: ServiceSummary | None = None
    time_slot: TimeSlotResponse | None = None


class PaginationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    page: int
    limit: int
    pages: int


class AppointmentListResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    items: list[AppointmentResponse]
    pagination: PaginationResponse


class AppointmentStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    pending: int
    confirmed: int
    cancelled: int
    completed: int
    completion_rate: str


class ErrorResponse(BaseModel):
    error: str
    message: str


# Documented error bodies shared by every booking router
ERROR_RESPONSES = {
    status_code: {"model": ErrorResponse}
    for status_code in (400, 401, 403, 404, 409)
}
