"""
Unit tests for the appointment status transition table.
"""

import pytest

from booking.services import ALLOWED_TRANSITIONS, ensure_transition
from database.models import ACTIVE_STATUSES, TERMINAL_STATUSES, AppointmentStatus
from shared.errors import ValidationError


@pytest.mark.parametrize(
    "current, target",
    [
        (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED),
        (AppointmentStatus.PENDING, AppointmentStatus.COMPLETED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED),
    ],
)
def test_allowed_transitions(current, target):
    ensure_transition(current, target)


@pytest.mark.parametrize("terminal", TERMINAL_STATUSES)
@pytest.mark.parametrize("target", list(AppointmentStatus))
def test_terminal_states_have_no_exit(terminal, target):
    with pytest.raises(ValidationError):
        ensure_transition(terminal, target)


def test_confirmed_cannot_go_back_to_pending():
    with pytest.raises(ValidationError, match="confirmed to pending"):
        ensure_transition(AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING)


def test_every_status_is_in_the_table():
    assert set(ALLOWED_TRANSITIONS) == set(AppointmentStatus)


def test_active_and_terminal_partition_statuses():
    assert set(ACTIVE_STATUSES) | set(TERMINAL_STATUSES) == set(AppointmentStatus)
    assert not set(ACTIVE_STATUSES) & set(TERMINAL_STATUSES)
