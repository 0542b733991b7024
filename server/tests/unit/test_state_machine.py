"""Unit tests for the booking state machine."""

import itertools
from datetime import datetime

import pytest

from conftest import drive_to
from lodging.core.exceptions import InvalidTransitionError
from lodging.models.booking import TERMINAL_STATUSES, Booking, BookingStatus
from lodging.schemas.booking import (
    CancelBookingRequest,
    CheckInRequest,
    CheckOutRequest,
    MarkPendingRequest,
    RejectBookingRequest,
)
from lodging.services.state_machine import ALLOWED_TRANSITIONS, apply_transition, can_transition

EXPECTED_TABLE = {
    BookingStatus.HOLD: {
        BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.REJECTED,
    },
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.REJECTED},
    BookingStatus.CONFIRMED: {
        BookingStatus.CHECKED_IN, BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.NO_SHOW,
    },
    BookingStatus.CHECKED_IN: {BookingStatus.CHECKED_OUT},
}

# Service call performing each action, keyed by the status it moves to
ACTIONS = {
    BookingStatus.PENDING: lambda service, booking_id: service.mark_pending(MarkPendingRequest(booking_id=booking_id)),
    BookingStatus.CONFIRMED: lambda service, booking_id: service.confirm(booking_id),
    BookingStatus.CHECKED_IN: lambda service, booking_id: service.check_in(CheckInRequest(booking_id=booking_id)),
    BookingStatus.CHECKED_OUT: lambda service, booking_id: service.check_out(CheckOutRequest(booking_id=booking_id)),
    BookingStatus.CANCELLED: lambda service, booking_id: service.cancel(CancelBookingRequest(booking_id=booking_id)),
    BookingStatus.REJECTED: lambda service, booking_id: service.reject(
        RejectBookingRequest(booking_id=booking_id, reason="channel declined")
    ),
    BookingStatus.NO_SHOW: lambda service, booking_id: service.mark_no_show(booking_id),
}

INVALID_PAIRS = [
    (from_status, to_status)
    for from_status, to_status in itertools.product(BookingStatus, ACTIONS)
    if to_status not in EXPECTED_TABLE.get(from_status, set())
]


@pytest.mark.parametrize(("from_status", "to_status"), list(itertools.product(BookingStatus, BookingStatus)))
def test_transition_table(from_status, to_status):
    """The transition table allows exactly the documented moves."""
    expected = to_status in EXPECTED_TABLE.get(from_status, set())
    assert can_transition(from_status, to_status) is expected


def test_terminal_states_have_no_exits():
    for status in TERMINAL_STATUSES:
        assert ALLOWED_TRANSITIONS[status] == frozenset()
        assert status.is_terminal


def test_apply_transition_stamps_timestamp():
    booking = Booking(status=BookingStatus.HOLD.value)
    now = datetime(2025, 11, 1, 12, 0)

    fragment = apply_transition(booking, BookingStatus.CONFIRMED, now, "confirm")

    assert fragment == {"from_status": "HOLD", "to_status": "CONFIRMED"}
    assert booking.status == "CONFIRMED"
    assert booking.confirmed_at == now
    assert booking.updated_at == now


def test_apply_transition_rejects_invalid_move():
    booking = Booking(status=BookingStatus.CHECKED_OUT.value)

    with pytest.raises(InvalidTransitionError) as exc_info:
        apply_transition(booking, BookingStatus.CANCELLED, datetime(2025, 11, 1), "cancel")

    assert exc_info.value.status_code == 409
    assert exc_info.value.problem_details["code"] == "INVALID_TRANSITION"
    assert booking.status == "CHECKED_OUT"


@pytest.mark.asyncio
@pytest.mark.parametrize(("from_status", "to_status"), INVALID_PAIRS)
async def test_invalid_transition_leaves_status_unchanged(
    booking_service, clock, catalog, from_status, to_status
):
    """Every action outside the table fails with InvalidTransition and changes nothing."""
    booking = await drive_to(booking_service, clock, catalog, from_status)
    assert booking.status == from_status.value
    trail_before = await booking_service.audit_trail(booking.id)

    with pytest.raises(InvalidTransitionError):
        await ACTIONS[to_status](booking_service, booking.id)

    persisted = await booking_service.get_booking(booking.id)
    assert persisted.status == from_status.value
    assert len(await booking_service.audit_trail(booking.id)) == len(trail_before)
