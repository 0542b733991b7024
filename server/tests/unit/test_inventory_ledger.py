"""Unit tests for the date-scoped inventory ledger."""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from lodging.core.exceptions import (
    CapacityUnavailableError,
    ConflictError,
    InvalidDateRangeError,
    InvariantViolationError,
    NotFoundError,
)
from lodging.models.inventory import AllocationSource

NOV_5 = date(2025, 11, 5)
NOV_8 = date(2025, 11, 8)


async def _counters(ledger, room_type_id, start=NOV_5, end=NOV_8):
    nights = await ledger.availability(room_type_id, start, end)
    return [(night["holds"], night["confirmed"], night["free_to_sell"]) for night in nights]


@pytest.mark.asyncio
async def test_availability_reports_base_capacity_for_untouched_nights(booking_service, catalog):
    nights = await booking_service.ledger.availability(catalog.room_type_id, NOV_5, NOV_8)

    assert [night["date"] for night in nights] == [NOV_5, NOV_5 + timedelta(days=1), NOV_5 + timedelta(days=2)]
    assert all(night["total_capacity"] == 5 and night["free_to_sell"] == 5 for night in nights)


@pytest.mark.asyncio
async def test_hold_then_release_restores_every_night(booking_service, session_factory, catalog):
    ledger = booking_service.ledger
    before = await _counters(ledger, catalog.room_type_id)

    async with session_factory() as session:
        async with session.begin():
            await ledger.try_hold(session, catalog.room_type_id, NOV_5, NOV_8, 2)
    assert await _counters(ledger, catalog.room_type_id) == [(2, 0, 3)] * 3

    async with session_factory() as session:
        async with session.begin():
            await ledger.release(session, catalog.room_type_id, NOV_5, NOV_8, 2, AllocationSource.HOLD)
    assert await _counters(ledger, catalog.room_type_id) == before


@pytest.mark.asyncio
async def test_check_out_date_is_not_held(booking_service, session_factory, catalog):
    ledger = booking_service.ledger
    async with session_factory() as session:
        async with session.begin():
            await ledger.try_hold(session, catalog.room_type_id, NOV_5, NOV_5 + timedelta(days=1), 1)

    nights = await ledger.availability(catalog.room_type_id, NOV_5, NOV_5 + timedelta(days=2))
    assert [night["holds"] for night in nights] == [1, 0]


@pytest.mark.asyncio
async def test_commit_moves_holds_to_confirmed(booking_service, session_factory, catalog):
    ledger = booking_service.ledger
    async with session_factory() as session:
        async with session.begin():
            await ledger.try_hold(session, catalog.room_type_id, NOV_5, NOV_8, 1)
            await ledger.commit_hold(session, catalog.room_type_id, NOV_5, NOV_8, 1)

    assert await _counters(ledger, catalog.room_type_id) == [(0, 1, 4)] * 3


@pytest.mark.asyncio
async def test_try_hold_is_all_or_nothing(booking_service, session_factory, catalog):
    """A single sold-out night rejects the whole span and names that night."""
    ledger = booking_service.ledger
    middle = NOV_5 + timedelta(days=1)
    await ledger.set_capacity(catalog.room_type_id, middle, middle + timedelta(days=1), 0, actor="revenue")

    with pytest.raises(CapacityUnavailableError) as exc_info:
        async with session_factory() as session:
            async with session.begin():
                await ledger.try_hold(session, catalog.room_type_id, NOV_5, NOV_8, 1)

    assert exc_info.value.unavailable_date == middle
    assert exc_info.value.problem_details["code"] == "CAPACITY_UNAVAILABLE"
    nights = await ledger.availability(catalog.room_type_id, NOV_5, NOV_8)
    assert [night["holds"] for night in nights] == [0, 0, 0]


@pytest.mark.asyncio
async def test_release_more_than_held_is_an_invariant_violation(booking_service, session_factory, catalog):
    ledger = booking_service.ledger
    async with session_factory() as session:
        async with session.begin():
            await ledger.try_hold(session, catalog.room_type_id, NOV_5, NOV_8, 1)

    with pytest.raises(InvariantViolationError):
        async with session_factory() as session:
            async with session.begin():
                await ledger.release(session, catalog.room_type_id, NOV_5, NOV_8, 2, AllocationSource.HOLD)

    # Rolled back, not clamped
    assert await _counters(ledger, catalog.room_type_id) == [(1, 0, 4)] * 3


@pytest.mark.asyncio
async def test_release_of_confirmed_rooms_never_held(booking_service, session_factory, catalog):
    with pytest.raises(InvariantViolationError):
        async with session_factory() as session:
            async with session.begin():
                await booking_service.ledger.release(
                    session, catalog.room_type_id, NOV_5, NOV_8, 1, AllocationSource.CONFIRMED
                )


@pytest.mark.asyncio
async def test_set_capacity_below_allocations_is_rejected(booking_service, session_factory, catalog):
    ledger = booking_service.ledger
    async with session_factory() as session:
        async with session.begin():
            await ledger.try_hold(session, catalog.room_type_id, NOV_5 + timedelta(days=2), NOV_8, 3)

    with pytest.raises(ConflictError):
        await ledger.set_capacity(catalog.room_type_id, NOV_5, NOV_8, 2, actor="revenue")

    nights = await ledger.availability(catalog.room_type_id, NOV_5, NOV_8)
    assert [night["total_capacity"] for night in nights] == [5, 5, 5]


@pytest.mark.asyncio
async def test_set_capacity_updates_every_night(booking_service, catalog):
    nights = await booking_service.ledger.set_capacity(catalog.room_type_id, NOV_5, NOV_8, 8, actor="revenue")

    assert [night["total_capacity"] for night in nights] == [8, 8, 8]
    assert [night["free_to_sell"] for night in nights] == [8, 8, 8]


@pytest.mark.asyncio
async def test_invalid_ranges_are_rejected(booking_service, catalog):
    with pytest.raises(InvalidDateRangeError):
        await booking_service.ledger.availability(catalog.room_type_id, NOV_8, NOV_5)

    with pytest.raises(InvalidDateRangeError):
        await booking_service.ledger.set_capacity(catalog.room_type_id, NOV_5, NOV_5, 3, actor="revenue")


@pytest.mark.asyncio
async def test_unknown_room_type(booking_service):
    with pytest.raises(NotFoundError):
        await booking_service.ledger.availability(uuid4(), NOV_5, NOV_8)
