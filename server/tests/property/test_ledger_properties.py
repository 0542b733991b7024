"""Property-based tests for fee and inventory invariants."""

import asyncio
import tempfile
from collections import Counter
from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from conftest import STAY_START, FixedClock, booking_request, create_catalog
from lodging.core.clock import stay_dates
from lodging.core.config import Settings
from lodging.core.database import build_engine, build_session_factory, init_db
from lodging.core.exceptions import CapacityUnavailableError, HoldExpiredError, InvalidTransitionError
from lodging.models.booking import BookingStatus
from lodging.models.policy import CancellationPolicy
from lodging.schemas.booking import CancelBookingRequest, ListBookingsRequest
from lodging.services.booking_service import BookingService
from lodging.services.cancellation_policy import compute_fee

CHECK_IN_AT = datetime(2025, 11, 5, 14, 0)

# Strategies for generating test data
percent_tiers = st.lists(
    st.tuples(st.integers(min_value=0, max_value=720), st.integers(min_value=0, max_value=100)),
    max_size=5,
    unique_by=lambda tier: tier[0],
)
flat_tiers = st.lists(
    st.tuples(st.integers(min_value=0, max_value=720), st.integers(min_value=0, max_value=1_000_000)),
    max_size=3,
    unique_by=lambda tier: tier[0],
)
hours_to_check_in = st.floats(min_value=-72, max_value=1000, allow_nan=False)
amounts_paid = st.integers(min_value=0, max_value=10_000_000)

# (action, rooms, night offset, booking index)
operations = st.lists(
    st.tuples(
        st.sampled_from(["create", "confirm", "cancel", "expire"]),
        st.integers(min_value=1, max_value=3),
        st.integers(min_value=0, max_value=3),
        st.integers(min_value=0, max_value=20),
    ),
    min_size=1,
    max_size=12,
)


def _policy(percent, flat):
    tiers = [{"hours_before": hours, "fee_percent": fee} for hours, fee in percent]
    used = {hours for hours, _ in percent}
    tiers += [{"hours_before": hours, "flat_fee": fee} for hours, fee in flat if hours not in used]
    return CancellationPolicy(id=uuid4(), name="Generated", tiers=tiers, no_show_fee_percent=100)


@given(percent=percent_tiers, flat=flat_tiers, hours=hours_to_check_in, paid=amounts_paid)
def test_fee_and_refund_split_the_amount_paid(percent, flat, hours, paid):
    quote = compute_fee(_policy(percent, flat), CHECK_IN_AT, CHECK_IN_AT - timedelta(hours=hours), paid)

    assert 0 <= quote.fee <= paid
    assert quote.fee + quote.refund == paid


@given(percent=percent_tiers, paid=amounts_paid)
def test_cancelling_beyond_every_threshold_is_free(percent, paid):
    policy = _policy(percent, [])
    furthest = max((hours for hours, _ in percent), default=0)

    quote = compute_fee(policy, CHECK_IN_AT, CHECK_IN_AT - timedelta(hours=furthest + 1), paid)

    assert quote.fee == 0
    assert quote.refund == paid


@given(percent=percent_tiers, hours=hours_to_check_in, paid=amounts_paid)
def test_no_show_forfeits_everything_by_default(percent, hours, paid):
    quote = compute_fee(_policy(percent, []), CHECK_IN_AT, CHECK_IN_AT - timedelta(hours=hours), paid, no_show=True)

    assert quote.fee == paid
    assert quote.refund == 0


async def _replay(ops, capacity):
    with tempfile.TemporaryDirectory() as tmp:
        engine = build_engine(f"sqlite+aiosqlite:///{Path(tmp) / 'ledger.db'}")
        try:
            await init_db(bind=engine)
            session_factory = build_session_factory(engine)
            clock = FixedClock()
            service = BookingService(
                session_factory,
                settings=Settings(environment="test", concurrency_backoff_seconds=0.01),
                clock=clock,
            )
            catalog = await create_catalog(session_factory, clock, capacity=capacity)
            booking_ids = []

            for action, rooms, offset, index in ops:
                target = booking_ids[index % len(booking_ids)] if booking_ids else None
                try:
                    if action == "create":
                        request = booking_request(
                            catalog, check_in=STAY_START + timedelta(days=offset), rooms=rooms, guests=rooms
                        )
                        booking_ids.append((await service.create(request)).id)
                    elif action == "confirm" and target:
                        await service.confirm(target)
                    elif action == "cancel" and target:
                        await service.cancel(CancelBookingRequest(booking_id=target))
                    elif action == "expire":
                        clock.advance(minutes=16)
                        await service.holds.sweep()
                except (CapacityUnavailableError, InvalidTransitionError, HoldExpiredError):
                    pass

            bookings, _ = await service.list_bookings(ListBookingsRequest(limit=100))
            held, confirmed = Counter(), Counter()
            for booking in bookings:
                status = BookingStatus(booking.status)
                hold = await _active_hold(service, session_factory, booking)
                for day in stay_dates(booking.check_in, booking.check_out):
                    if status is BookingStatus.CONFIRMED:
                        confirmed[day] += booking.rooms
                    elif hold:
                        held[day] += booking.rooms

            nights = await service.ledger.availability(
                catalog.room_type_id, STAY_START, STAY_START + timedelta(days=6)
            )
            for night in nights:
                assert night["holds"] == held[night["date"]]
                assert night["confirmed"] == confirmed[night["date"]]
                assert 0 <= night["free_to_sell"] <= night["total_capacity"]
        finally:
            await engine.dispose()


async def _active_hold(service, session_factory, booking):
    if BookingStatus(booking.status) not in (BookingStatus.HOLD, BookingStatus.PENDING):
        return False
    async with session_factory() as session:
        hold = await service.holds.get_hold(session, booking.hold_token)
        return bool(hold and hold.is_active)


@settings(max_examples=15, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(ops=operations, capacity=st.integers(min_value=1, max_value=4))
def test_counters_always_match_live_bookings(ops, capacity):
    """Whatever the sequence of creates, confirms, cancels and sweeps, counters equal what bookings occupy."""
    asyncio.run(_replay(ops, capacity))
