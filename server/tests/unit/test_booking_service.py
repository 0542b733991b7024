"""Unit tests for the booking lifecycle service."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import STAY_START, RecordingNotifier, booking_request, drive_to, ota_request
from lodging.core.exceptions import (
    CapacityUnavailableError,
    HoldExpiredError,
    InvalidDateRangeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from lodging.models.booking import BookingSource, BookingStatus
from lodging.models.payment import PaymentMethod
from lodging.schemas.booking import (
    CancelBookingRequest,
    CheckInRequest,
    CheckOutRequest,
    GuestDetails,
    ListBookingsRequest,
    MarkPendingRequest,
    RejectBookingRequest,
    UpdateNotesRequest,
)
from lodging.schemas.catalog import CreateRatePlanRequest
from lodging.schemas.payment import RecordPaymentRequest
from lodging.services.booking_service import BookingService
from lodging.services.catalog_service import CatalogService


async def _nights(booking_service, catalog, start=STAY_START, days=2):
    return await booking_service.ledger.availability(catalog.room_type_id, start, start + timedelta(days=days))


@pytest.mark.asyncio
async def test_create_holds_inventory(booking_service, catalog, clock):
    booking = await booking_service.create(booking_request(catalog, rooms=2, guests=3), actor="front-desk")

    assert booking.status == BookingStatus.HOLD.value
    assert booking.total_price == catalog.base_rate * 2 * 2
    assert booking.currency == "INR"
    assert booking.hold_token
    assert booking.hold_expires_at == clock() + timedelta(seconds=900)
    assert booking.rate_plan_id is None

    nights = await _nights(booking_service, catalog)
    assert [(night["holds"], night["free_to_sell"]) for night in nights] == [(2, 3), (2, 3)]

    trail = await booking_service.audit_trail(booking.id)
    assert [entry.action for entry in trail] == ["CREATE"]
    assert trail[0].actor == "front-desk"
    assert trail[0].details["to_status"] == "HOLD"


@pytest.mark.asyncio
async def test_create_prices_from_newest_active_rate_plan(booking_service, session_factory, catalog, clock):
    async with session_factory() as session:
        catalog_service = CatalogService(session, clock=clock)
        await catalog_service.create_rate_plan(
            CreateRatePlanRequest(room_type_id=catalog.room_type_id, name="Rack", nightly_rate=15000)
        )
        clock.advance(seconds=1)
        promo = await catalog_service.create_rate_plan(
            CreateRatePlanRequest(room_type_id=catalog.room_type_id, name="Promo", nightly_rate=8000)
        )

    booking = await booking_service.create(booking_request(catalog, nights=3))

    assert booking.rate_plan_id == promo.id
    assert booking.total_price == 8000 * 3


@pytest.mark.asyncio
async def test_explicit_total_price_wins(booking_service, catalog):
    booking = await booking_service.create(ota_request(catalog, total_price=17500, commission_pct=Decimal("15")))

    assert booking.total_price == 17500
    assert booking.commission_amount == 2625


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "error"),
    [
        ({"check_in": STAY_START, "nights": 0}, InvalidDateRangeError),
        ({"check_in": date(2025, 10, 30)}, InvalidDateRangeError),
        ({"nights": 400}, InvalidDateRangeError),
        ({"guests": 5, "rooms": 2}, ValidationError),
        ({"source": BookingSource.OTA_EXPEDIA}, ValidationError),
        ({"commission_pct": Decimal("10")}, ValidationError),
        ({"currency": "USD"}, ValidationError),
    ],
)
async def test_create_rejects_invalid_requests_without_holding(booking_service, catalog, overrides, error):
    with pytest.raises(error):
        await booking_service.create(booking_request(catalog, **overrides))

    nights = await _nights(booking_service, catalog)
    assert all(night["holds"] == 0 for night in nights)


@pytest.mark.asyncio
async def test_create_for_unknown_policy_is_not_found(booking_service, catalog):
    with pytest.raises(NotFoundError):
        await booking_service.create(booking_request(catalog, cancellation_policy_id=uuid4()))


@pytest.mark.asyncio
async def test_create_without_capacity_names_first_date(booking_service, catalog):
    await booking_service.create(booking_request(catalog, rooms=5, guests=5))

    with pytest.raises(CapacityUnavailableError) as exc_info:
        await booking_service.create(booking_request(catalog))

    assert exc_info.value.unavailable_date == STAY_START
    assert exc_info.value.available == 0


@pytest.mark.asyncio
async def test_reingesting_ota_reservation_returns_existing(booking_service, catalog):
    first = await booking_service.create(ota_request(catalog, external_id="EXP-77"))
    second = await booking_service.create(ota_request(catalog, external_id="EXP-77"))

    assert second.id == first.id
    nights = await _nights(booking_service, catalog)
    assert [night["holds"] for night in nights] == [1, 1]


@pytest.mark.asyncio
async def test_confirm_commits_hold(booking_service, catalog, notifier):
    booking = await booking_service.create(booking_request(catalog))
    confirmed = await booking_service.confirm(booking.id, actor="guest")

    assert confirmed.status == BookingStatus.CONFIRMED.value
    assert len(confirmed.confirmation_code) == 8
    assert confirmed.confirmation_code.isalnum()
    assert confirmed.hold_expires_at is None

    nights = await _nights(booking_service, catalog)
    assert [(night["holds"], night["confirmed"]) for night in nights] == [(0, 1), (0, 1)]
    assert (booking.id, "CONFIRMED") in notifier.events


@pytest.mark.asyncio
async def test_confirm_notifies_channel_for_ota_bookings_only(booking_service, catalog, channel_manager):
    direct = await booking_service.create(booking_request(catalog))
    ota = await booking_service.create(ota_request(catalog))

    await booking_service.confirm(direct.id)
    await booking_service.confirm(ota.id)

    assert channel_manager.events == [(ota.id, "CONFIRMED")]


@pytest.mark.asyncio
async def test_confirm_after_ttl_is_hold_expired(booking_service, catalog, clock):
    booking = await booking_service.create(booking_request(catalog))
    clock.advance(minutes=15, seconds=1)

    with pytest.raises(HoldExpiredError) as exc_info:
        await booking_service.confirm(booking.id)

    assert exc_info.value.status_code == 410
    assert (await booking_service.get_booking(booking.id)).status == BookingStatus.HOLD.value


@pytest.mark.asyncio
async def test_mark_pending_extends_hold(booking_service, catalog, clock):
    booking = await booking_service.create(booking_request(catalog))
    clock.advance(minutes=10)

    pending = await booking_service.mark_pending(MarkPendingRequest(booking_id=booking.id, reason="awaiting UPI"))

    assert pending.status == BookingStatus.PENDING.value
    assert pending.hold_expires_at == clock() + timedelta(seconds=3600)

    # Still confirmable after the original 15 minutes
    clock.advance(minutes=30)
    confirmed = await booking_service.confirm(booking.id)
    assert confirmed.status == BookingStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_check_in_window(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CONFIRMED)

    with pytest.raises(InvalidTransitionError):
        await booking_service.check_in(CheckInRequest(booking_id=booking.id))

    clock.set(datetime(2025, 11, 5, 16, 0))
    with pytest.raises(ValidationError):
        await booking_service.check_in(CheckInRequest(booking_id=booking.id, room_numbers=["101", "102"]))

    checked_in = await booking_service.check_in(CheckInRequest(booking_id=booking.id, room_numbers=[" 204 "]))
    assert checked_in.status == BookingStatus.CHECKED_IN.value
    assert checked_in.room_assignments == ["204"]


@pytest.mark.asyncio
async def test_check_in_after_check_out_date_is_rejected(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CONFIRMED)
    clock.set(datetime.combine(booking.check_out, datetime.min.time()))

    with pytest.raises(InvalidTransitionError):
        await booking_service.check_in(CheckInRequest(booking_id=booking.id))


@pytest.mark.asyncio
async def test_check_out_records_adjustment(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CHECKED_IN)
    await booking_service.record_payment(
        RecordPaymentRequest(booking_id=booking.id, amount=15000, method=PaymentMethod.CASH)
    )
    assert (await booking_service.outstanding_balance(booking.id))["outstanding"] == 5000

    checked_out = await booking_service.check_out(CheckOutRequest(booking_id=booking.id, final_charges=3000))

    assert checked_out.status == BookingStatus.CHECKED_OUT.value
    payments = await booking_service.list_payments(booking.id)
    adjustment = payments[-1]
    assert adjustment.method == PaymentMethod.ADJUSTMENT.value
    assert adjustment.amount == 2000
    assert (await booking_service.outstanding_balance(booking.id))["outstanding"] == 3000

    # Room-nights stay consumed
    nights = await _nights(booking_service, catalog)
    assert [night["confirmed"] for night in nights] == [1, 1]


@pytest.mark.asyncio
async def test_check_out_extra_charges_record_negative_adjustment(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CHECKED_IN)

    await booking_service.check_out(CheckOutRequest(booking_id=booking.id, final_charges=24500))

    payments = await booking_service.list_payments(booking.id)
    assert [(p.method, p.amount) for p in payments] == [(PaymentMethod.ADJUSTMENT.value, -4500)]
    assert (await booking_service.outstanding_balance(booking.id))["outstanding"] == 24500


@pytest.mark.asyncio
async def test_check_out_rejects_negative_final_charges(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CHECKED_IN)

    with pytest.raises(ValidationError):
        await booking_service.check_out(CheckOutRequest(booking_id=booking.id, final_charges=-1))


@pytest.mark.asyncio
async def test_cancel_hold_releases_inventory(booking_service, catalog):
    booking = await booking_service.create(booking_request(catalog))

    cancelled = await booking_service.cancel(CancelBookingRequest(booking_id=booking.id, reason="changed plans"))

    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.cancellation_reason == "changed plans"
    nights = await _nights(booking_service, catalog)
    assert all(night["free_to_sell"] == 5 for night in nights)

    trail = await booking_service.audit_trail(booking.id)
    assert trail[-1].action == "CANCEL"
    assert trail[-1].details["released"] == "hold"


@pytest.mark.asyncio
async def test_cancel_confirmed_without_policy_refunds_in_full(booking_service, catalog, clock, gateway):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CONFIRMED)
    payment = await booking_service.record_payment(
        RecordPaymentRequest(booking_id=booking.id, amount=20000, method=PaymentMethod.CARD)
    )

    await booking_service.cancel(CancelBookingRequest(booking_id=booking.id))

    nights = await _nights(booking_service, catalog)
    assert all(night["confirmed"] == 0 and night["free_to_sell"] == 5 for night in nights)
    payments = await booking_service.list_payments(booking.id)
    assert [p.amount for p in payments] == [20000, -20000]
    assert payments[0].status == "REFUNDED"
    assert gateway.refunds == [(payment.id, 20000)]


@pytest.mark.asyncio
async def test_reject_refunds_everything(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.PENDING)
    await booking_service.record_payment(
        RecordPaymentRequest(booking_id=booking.id, amount=5000, method=PaymentMethod.UPI)
    )
    await booking_service.record_payment(
        RecordPaymentRequest(booking_id=booking.id, amount=3000, method=PaymentMethod.CASH)
    )

    rejected = await booking_service.reject(RejectBookingRequest(booking_id=booking.id, reason="card declined"))

    assert rejected.status == BookingStatus.REJECTED.value
    balance = await booking_service.outstanding_balance(booking.id)
    assert balance["settled"] == 0
    refunds = [p for p in await booking_service.list_payments(booking.id) if p.amount < 0]
    # Newest charge is refunded first
    assert [r.amount for r in refunds] == [-3000, -5000]


@pytest.mark.asyncio
async def test_no_show_only_after_check_in_date(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CONFIRMED)
    await booking_service.record_payment(
        RecordPaymentRequest(booking_id=booking.id, amount=20000, method=PaymentMethod.CASH)
    )

    clock.set(datetime(2025, 11, 5, 23, 59))
    with pytest.raises(InvalidTransitionError):
        await booking_service.mark_no_show(booking.id)

    clock.set(datetime(2025, 11, 6, 0, 1))
    no_show = await booking_service.mark_no_show(booking.id, actor="night-audit")

    assert no_show.status == BookingStatus.NO_SHOW.value
    # Without a policy the whole amount is forfeited
    assert [p.amount for p in await booking_service.list_payments(booking.id)] == [20000]
    nights = await _nights(booking_service, catalog)
    assert all(night["confirmed"] == 0 for night in nights)


@pytest.mark.asyncio
async def test_mark_overdue_no_shows(booking_service, catalog, clock):
    overdue = await drive_to(booking_service, clock, catalog, BookingStatus.CONFIRMED)
    later = await drive_to(
        booking_service, clock, catalog, BookingStatus.CONFIRMED,
        request=booking_request(catalog, check_in=date(2025, 11, 20)),
    )

    clock.set(datetime(2025, 11, 7, 9, 0))
    marked = await booking_service.mark_overdue_no_shows()

    assert marked == 1
    assert (await booking_service.get_booking(overdue.id)).status == BookingStatus.NO_SHOW.value
    assert (await booking_service.get_booking(later.id)).status == BookingStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_update_notes_in_terminal_state(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CANCELLED)

    updated = await booking_service.update_notes(
        UpdateNotesRequest(booking_id=booking.id, notes_internal="Guest called to apologise")
    )

    assert updated.notes_internal == "Guest called to apologise"
    trail = await booking_service.audit_trail(booking.id)
    assert trail[-1].action == "UPDATE_NOTES"

    with pytest.raises(ValidationError):
        await booking_service.update_notes(UpdateNotesRequest(booking_id=booking.id))


@pytest.mark.asyncio
async def test_audit_trail_in_insertion_order(booking_service, catalog, clock):
    booking = await drive_to(booking_service, clock, catalog, BookingStatus.CHECKED_OUT)

    trail = await booking_service.audit_trail(booking.id)

    assert [entry.action for entry in trail] == ["CREATE", "CONFIRM", "CHECK_IN", "CHECK_OUT"]
    assert [entry.details.get("to_status") for entry in trail] == [
        "HOLD", "CONFIRMED", "CHECKED_IN", "CHECKED_OUT",
    ]


@pytest.mark.asyncio
async def test_unknown_booking_is_not_found(booking_service):
    with pytest.raises(NotFoundError):
        await booking_service.confirm(uuid4())
    with pytest.raises(NotFoundError):
        await booking_service.audit_trail(uuid4())


@pytest.mark.asyncio
async def test_list_bookings_filters_and_paginates(booking_service, catalog):
    created = []
    for index in range(5):
        guest = GuestDetails(name=f"Guest {index}", email=f"guest{index % 2}@example.com")
        created.append(await booking_service.create(booking_request(catalog, guest=guest)))
    await booking_service.confirm(created[0].id)

    page, cursor = await booking_service.list_bookings(ListBookingsRequest(limit=2))
    assert len(page) == 2 and cursor is not None
    seen = [booking.id for booking in page]
    while cursor:
        page, cursor = await booking_service.list_bookings(ListBookingsRequest(limit=2, cursor=cursor))
        seen.extend(booking.id for booking in page)
    assert sorted(seen) == sorted(booking.id for booking in created)
    assert len(set(seen)) == 5

    confirmed, _ = await booking_service.list_bookings(ListBookingsRequest(statuses=[BookingStatus.CONFIRMED]))
    assert [booking.id for booking in confirmed] == [created[0].id]

    by_email, _ = await booking_service.list_bookings(ListBookingsRequest(guest_email="GUEST1@example.com"))
    assert len(by_email) == 2

    with pytest.raises(ValidationError):
        await booking_service.list_bookings(ListBookingsRequest(cursor="not-a-cursor"))


@pytest.mark.asyncio
async def test_collaborator_failure_does_not_undo_commit(session_factory, test_settings, clock, catalog):
    service = BookingService(session_factory, settings=test_settings, clock=clock, notifier=RecordingNotifier(fail=True))

    booking = await service.create(booking_request(catalog))
    confirmed = await service.confirm(booking.id)

    assert confirmed.status == BookingStatus.CONFIRMED.value
    assert (await service.get_booking(booking.id)).status == BookingStatus.CONFIRMED.value
