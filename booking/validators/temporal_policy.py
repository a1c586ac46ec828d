"""
Temporal booking policy.

Pure checks of a candidate timestamp against "now":
- Lead time: a slot must start at least MIN_LEAD_TIME from now to be booked
- Cancellation cutoff: an appointment can be cancelled only while at least
  CANCEL_CUTOFF remains before it
- Booking horizon: availability is only served up to MAX_HORIZON ahead

Nothing here touches the database or raises; callers turn a failed check
into a ValidationError with a message of their own.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from shared.config import Settings
from shared.time_utils import day_bounds

MIN_LEAD_TIME = timedelta(hours=1)
CANCEL_CUTOFF = timedelta(hours=24)
MAX_HORIZON = timedelta(days=90)
DEFAULT_SLOT_DURATION = timedelta(minutes=60)


def _as_instant(target: date | datetime) -> datetime:
    # A bare date counts from the start of its UTC day
    if isinstance(target, datetime):
        return target
    return day_bounds(target)[0]


def can_book(
    slot_start: datetime, now: datetime, min_lead_time: timedelta = MIN_LEAD_TIME
) -> bool:
    """True iff slot_start >= now + min_lead_time."""
    return slot_start >= now + min_lead_time


def can_cancel(
    appointment_time: datetime, now: datetime, cutoff: timedelta = CANCEL_CUTOFF
) -> bool:
    """True iff appointment_time - now >= cutoff."""
    return appointment_time - now >= cutoff


def within_booking_horizon(
    target_date: date | datetime, now: datetime, horizon: timedelta = MAX_HORIZON
) -> bool:
    """True iff target_date <= now + horizon."""
    return _as_instant(target_date) <= now + horizon


@dataclass(frozen=True)
class TemporalPolicy:
    """
    Bundle of the policy windows plus the default slot length used when a
    provider generates slots without naming one.

    One horizon applies to every availability lookup, whether it is
    scoped by service or by provider.
    """

    min_lead_time: timedelta = MIN_LEAD_TIME
    cancel_cutoff: timedelta = CANCEL_CUTOFF
    max_horizon: timedelta = MAX_HORIZON
    slot_duration: timedelta = DEFAULT_SLOT_DURATION

    @classmethod
    def from_settings(cls, settings: Settings) -> "TemporalPolicy":
        return cls(
            min_lead_time=timedelta(minutes=settings.BOOKING_MIN_LEAD_MINUTES),
            cancel_cutoff=timedelta(hours=settings.CANCELLATION_CUTOFF_HOURS),
            max_horizon=timedelta(days=settings.BOOKING_HORIZON_DAYS),
            slot_duration=timedelta(minutes=settings.DEFAULT_SLOT_DURATION_MINUTES),
        )

    def can_book(self, slot_start: datetime, now: datetime) -> bool:
        return can_book(slot_start, now, self.min_lead_time)

    def can_cancel(self, appointment_time: datetime, now: datetime) -> bool:
        return can_cancel(appointment_time, now, self.cancel_cutoff)

    def within_booking_horizon(self, target_date: date | datetime, now: datetime) -> bool:
        return within_booking_horizon(target_date, now, self.max_horizon)
