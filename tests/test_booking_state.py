"""Tests for the booking state machine rules."""

from types import SimpleNamespace

import pytest

from app.core.exceptions import InvalidState
from app.domain.booking_state import (
    BookingStatus,
    TERMINAL_STATUSES,
    assert_booking_transition,
    can_transition,
    is_payment_locked,
    payment_group_state,
)


@pytest.mark.parametrize(
    "current,target",
    [
        ("WAITLISTED", "PENDING"),
        ("PENDING", "CONFIRMED"),
        ("PENDING", "FAILED"),
        ("FAILED", "PENDING"),
        ("CONFIRMED", "REFUNDED"),
        ("EXPIRED", "WAITLISTED"),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    assert_booking_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("WAITLISTED", "CONFIRMED"),
        ("CONFIRMED", "PENDING"),
        ("CONFIRMED", "WAITLISTED"),
        ("REFUNDED", "PENDING"),
        ("CANCELLED", "CONFIRMED"),
    ],
)
def test_illegal_transition_raises_with_current_status(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidState) as exc_info:
        assert_booking_transition(current, target)
    assert exc_info.value.current_status == current
    assert exc_info.value.status_code == 409


def test_every_terminal_status_can_reapply():
    for status in TERMINAL_STATUSES:
        assert can_transition(status, BookingStatus.WAITLISTED)


def _booking(**fields):
    defaults = dict(payment_token=None, payment_amount=None, amount_base_units=None, chain_id=None)
    return SimpleNamespace(**{**defaults, **fields})


def test_payment_group_state():
    assert payment_group_state(_booking()) == "unlocked"
    locked = _booking(
        payment_token="USDC", payment_amount=300, amount_base_units="300000000", chain_id=42161
    )
    assert payment_group_state(locked) == "locked"
    assert is_payment_locked(locked)
    assert payment_group_state(_booking(payment_token="USDC")) == "partial"
