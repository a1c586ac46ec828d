"""
Canonical timestamp handling.

All booking timestamps are timezone-aware UTC datetimes. Values coming from
the outside are parsed strictly here; anything ambiguous (no offset, loose
formats) is rejected with ValidationError instead of being guessed at.
"""

import re
from datetime import UTC, date, datetime, time, timedelta

from shared.errors import ValidationError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def utc_now() -> datetime:
    """Default clock for the booking services."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalise an aware datetime to UTC.

    Raises:
        ValidationError: If the datetime is naive
    """
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationError(
            "Timestamp must include a timezone offset",
            details={"value": value.isoformat()},
        )
    return value.astimezone(UTC)


def parse_timestamp(value: str | datetime | None) -> datetime:
    """
    Parse an ISO-8601 timestamp with explicit offset into aware UTC.

    Args:
        value: ISO string ("2025-11-08T10:00:00Z", "...+01:00") or aware datetime

    Returns:
        datetime in UTC

    Raises:
        ValidationError: If the value is missing, malformed or has no offset
    """
    if value is None:
        raise ValidationError("Invalid appointment date format")

    if isinstance(value, datetime):
        return ensure_utc(value)

    if not isinstance(value, str) or "T" not in value:
        raise ValidationError(
            "Invalid appointment date format", details={"value": str(value)}
        )

    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(
            "Invalid appointment date format", details={"value": value}
        ) from None

    return ensure_utc(parsed)


def parse_date(value: str | date) -> date:
    """Parse a strict YYYY-MM-DD calendar date."""
    if isinstance(value, datetime):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    if isinstance(value, date):
        return value

    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValidationError(
            "Invalid date format. Use YYYY-MM-DD", details={"value": str(value)}
        )

    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(
            "Invalid date format. Use YYYY-MM-DD", details={"value": value}
        ) from None


def parse_clock_time(value: str | time) -> time:
    """Parse a strict 24h HH:MM wall-clock time."""
    if isinstance(value, time):
        return value

    match = CLOCK_PATTERN.match(value) if isinstance(value, str) else None
    if not match:
        raise ValidationError(
            "Invalid time format. Use HH:MM", details={"value": str(value)}
        )
    return time(int(match.group(1)), int(match.group(2)))


def at_utc(day: date, clock: time) -> datetime:
    """Combine a calendar date and a wall-clock time as a UTC instant."""
    return datetime.combine(day, clock, tzinfo=UTC)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return the UTC half-open interval [00:00, next day 00:00) for a date."""
    start = at_utc(day, time.min)
    return start, start + timedelta(days=1)
