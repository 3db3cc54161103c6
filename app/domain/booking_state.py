"""Booking state machine."""

from enum import Enum

from app.core.exceptions import InvalidState


class BookingStatus(str, Enum):
    WAITLISTED = "WAITLISTED"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentToken(str, Enum):
    USDC = "USDC"
    USDT = "USDT"


# Statuses a fresh application may replace on the same row
TERMINAL_STATUSES = frozenset(
    {
        BookingStatus.FAILED,
        BookingStatus.EXPIRED,
        BookingStatus.CANCELLED,
        BookingStatus.REFUNDED,
    }
)

ACTIVE_STATUSES = frozenset({BookingStatus.WAITLISTED, BookingStatus.PENDING})

# Statuses from which a payment lock may be written (FAILED = retry after
# an unsuccessful verification)
LOCKABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.FAILED})

# Statuses that may carry a tx_hash
TX_HASH_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.FAILED}
)

BOOKING_TRANSITIONS = {
    BookingStatus.WAITLISTED: {BookingStatus.PENDING, BookingStatus.CANCELLED},
    BookingStatus.PENDING: {
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.FAILED,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.CONFIRMED: {BookingStatus.REFUNDED},
    BookingStatus.FAILED: {BookingStatus.PENDING, BookingStatus.WAITLISTED},
    BookingStatus.EXPIRED: {BookingStatus.WAITLISTED},
    BookingStatus.CANCELLED: {BookingStatus.WAITLISTED},
    BookingStatus.REFUNDED: {BookingStatus.WAITLISTED},
}

PAYMENT_FIELDS = ("payment_token", "payment_amount", "amount_base_units", "chain_id")

CLEARED_PAYMENT_FIELDS = {name: None for name in PAYMENT_FIELDS}


def can_transition(current: str, target: str) -> bool:
    return BookingStatus(target) in BOOKING_TRANSITIONS.get(BookingStatus(current), set())


def assert_booking_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidState(
            current_status=str(BookingStatus(current).value),
            detail=f"Invalid booking transition: {current} → {target}",
        )


def payment_group_state(booking) -> str:
    """Return "locked", "unlocked" or "partial" for the payment-field group."""
    values = [getattr(booking, name) for name in PAYMENT_FIELDS]
    if all(v is None for v in values):
        return "unlocked"
    if all(v is not None for v in values):
        return "locked"
    return "partial"


def is_payment_locked(booking) -> bool:
    return payment_group_state(booking) == "locked"
