"""
Booking validators.

Validators:
- can_book: Slot start respects the minimum lead time
- can_cancel: Appointment is still outside the cancellation cutoff
- within_booking_horizon: Requested date is not too far ahead
"""

from booking.validators.temporal_policy import (
    CANCEL_CUTOFF,
    DEFAULT_SLOT_DURATION,
    MAX_HORIZON,
    MIN_LEAD_TIME,
    TemporalPolicy,
    can_book,
    can_cancel,
    within_booking_horizon,
)

__all__ = [
    "CANCEL_CUTOFF",
    "DEFAULT_SLOT_DURATION",
    "MAX_HORIZON",
    "MIN_LEAD_TIME",
    "TemporalPolicy",
    "can_book",
    "can_cancel",
    "within_booking_horizon",
]
