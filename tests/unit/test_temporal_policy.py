"""
Unit tests for booking/validators/temporal_policy.py.

Boundary checks for lead time, cancellation cutoff and booking horizon.
"""

from datetime import UTC, date, datetime, timedelta

import pytest

from booking.validators import (
    CANCEL_CUTOFF,
    DEFAULT_SLOT_DURATION,
    MAX_HORIZON,
    MIN_LEAD_TIME,
    TemporalPolicy,
    can_book,
    can_cancel,
    within_booking_horizon,
)
from shared.config import Settings

NOW = datetime(2030, 1, 15, 8, 0, tzinfo=UTC)


class TestCanBook:
    def test_default_lead_time_is_one_hour(self):
        assert MIN_LEAD_TIME == timedelta(hours=1)

    @pytest.mark.parametrize(
        "offset, expected",
        [
            (timedelta(minutes=59), False),
            (timedelta(minutes=60), True),
            (timedelta(minutes=61), True),
            (timedelta(minutes=-5), False),
        ],
    )
    def test_lead_time_boundary(self, offset, expected):
        assert can_book(NOW + offset, NOW) is expected

    def test_custom_lead_time(self):
        assert can_book(NOW + timedelta(minutes=20), NOW, timedelta(minutes=15)) is True
        assert can_book(NOW + timedelta(minutes=10), NOW, timedelta(minutes=15)) is False


class TestCanCancel:
    def test_default_cutoff_is_24_hours(self):
        assert CANCEL_CUTOFF == timedelta(hours=24)

    @pytest.mark.parametrize(
        "offset, expected",
        [
            (timedelta(hours=23), False),
            (timedelta(hours=23, minutes=59), False),
            (timedelta(hours=24), True),
            (timedelta(hours=25), True),
        ],
    )
    def test_cutoff_boundary(self, offset, expected):
        assert can_cancel(NOW + offset, NOW) is expected

    def test_past_appointment_cannot_be_cancelled(self):
        assert can_cancel(NOW - timedelta(hours=1), NOW) is False


class TestBookingHorizon:
    def test_default_horizon_is_90_days(self):
        assert MAX_HORIZON == timedelta(days=90)

    def test_datetime_inside_and_beyond_horizon(self):
        assert within_booking_horizon(NOW + timedelta(days=90), NOW) is True
        assert within_booking_horizon(NOW + timedelta(days=90, seconds=1), NOW) is False

    def test_date_counts_from_start_of_utc_day(self):
        # 2030-04-15 00:00 UTC is 89 days 16 hours after NOW
        assert within_booking_horizon(date(2030, 4, 15), NOW) is True
        # 2030-04-16 00:00 UTC is past NOW + 90 days (2030-04-15 08:00)
        assert within_booking_horizon(date(2030, 4, 16), NOW) is False


class TestTemporalPolicy:
    def test_defaults_match_module_constants(self):
        policy = TemporalPolicy()
        assert policy.min_lead_time == MIN_LEAD_TIME
        assert policy.cancel_cutoff == CANCEL_CUTOFF
        assert policy.max_horizon == MAX_HORIZON
        assert policy.slot_duration == DEFAULT_SLOT_DURATION

    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            BOOKING_MIN_LEAD_MINUTES=30,
            CANCELLATION_CUTOFF_HOURS=12,
            BOOKING_HORIZON_DAYS=30,
            DEFAULT_SLOT_DURATION_MINUTES=45,
        )
        policy = TemporalPolicy.from_settings(settings)

        assert policy.min_lead_time == timedelta(minutes=30)
        assert policy.cancel_cutoff == timedelta(hours=12)
        assert policy.max_horizon == timedelta(days=30)
        assert policy.slot_duration == timedelta(minutes=45)

    def test_methods_use_configured_windows(self):
        policy = TemporalPolicy(min_lead_time=timedelta(minutes=30), cancel_cutoff=timedelta(hours=2))

        assert policy.can_book(NOW + timedelta(minutes=45), NOW) is True
        assert policy.can_cancel(NOW + timedelta(hours=3), NOW) is True
        assert policy.can_cancel(NOW + timedelta(hours=1), NOW) is False
