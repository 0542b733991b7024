"""Booking status transition table and helpers shared by the booking service and the hold sweep."""

import logging
from datetime import datetime

from ..core.exceptions import InvalidTransitionError
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.HOLD: frozenset({
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
    }),
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CHECKED_IN,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
        BookingStatus.NO_SHOW,
    }),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
    BookingStatus.CHECKED_OUT: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
    BookingStatus.REJECTED: frozenset(),
}

# Statuses whose allocation can still be moved
MODIFIABLE_STATUSES = frozenset({BookingStatus.HOLD, BookingStatus.PENDING, BookingStatus.CONFIRMED})

# Timestamp column stamped when entering a status
_STATUS_TIMESTAMPS = {
    BookingStatus.CONFIRMED: "confirmed_at",
    BookingStatus.CHECKED_IN: "checked_in_at",
    BookingStatus.CHECKED_OUT: "checked_out_at",
    BookingStatus.CANCELLED: "cancelled_at",
    BookingStatus.NO_SHOW: "cancelled_at",
    BookingStatus.REJECTED: "cancelled_at",
}


def can_transition(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[from_status]


def ensure_transition(booking: Booking, to_status: BookingStatus, action: str) -> BookingStatus:
    """
    Return the booking's current status if ``to_status`` is reachable from it.

    Raises:
        InvalidTransitionError: Otherwise
    """
    current = booking.current_status
    if not can_transition(current, to_status):
        logger.info(
            "Rejected invalid transition",
            extra={
                "booking_id": str(booking.id),
                "from_status": current.value,
                "to_status": to_status.value,
                "action": action,
            }
        )
        raise InvalidTransitionError(str(booking.id), current.value, action)
    return current


def ensure_modifiable(booking: Booking) -> BookingStatus:
    current = booking.current_status
    if current not in MODIFIABLE_STATUSES:
        raise InvalidTransitionError(str(booking.id), current.value, "modify")
    return current


def apply_transition(booking: Booking, to_status: BookingStatus, now: datetime, action: str) -> dict[str, str]:
    """Move the booking to ``to_status`` and return the audit fragment describing it."""
    from_status = ensure_transition(booking, to_status, action)
    booking.status = to_status.value
    booking.updated_at = now
    stamp = _STATUS_TIMESTAMPS.get(to_status)
    if stamp:
        setattr(booking, stamp, now)

    metrics_collector.record_transition(to_status.value)
    return {"from_status": from_status.value, "to_status": to_status.value}
