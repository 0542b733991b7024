"""Booking router for booking lifecycle operations."""

from fastapi import APIRouter

from ..core.dependencies import Actor, BookingServiceDependency
from ..schemas.booking import (
    AuditEntry,
    AuditTrail,
    Booking,
    BookingIdRequest,
    CancelBookingRequest,
    CancellationQuote,
    CheckInRequest,
    CheckOutRequest,
    CreateBookingRequest,
    ListBookingsRequest,
    ListBookingsResponse,
    MarkPendingRequest,
    ModifyBookingRequest,
    RejectBookingRequest,
    UpdateNotesRequest,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.booking_service import BookingService

router = APIRouter(prefix="/v1/booking", tags=["booking"], responses=PROBLEM_RESPONSES)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking.model_validate(booking_model)


@router.post("/create", response_model=Booking)
async def create_booking(
    request: CreateBookingRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    """
    Create a booking on hold.

    Holds the requested room-nights for the hold TTL. Re-sending an OTA
    reservation already ingested returns the existing booking.
    """
    booking = await booking_service.create(request, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/mark-pending", response_model=Booking)
async def mark_pending(
    request: MarkPendingRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    """Mark a held booking as awaiting payment or channel approval."""
    booking = await booking_service.mark_pending(request, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/confirm", response_model=Booking)
async def confirm_booking(
    request: BookingIdRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    """
    Confirm a booking from its hold.

    Returns 410 if the hold has expired; the slot may have been resold.
    """
    booking = await booking_service.confirm(request.booking_id, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/check-in", response_model=Booking)
async def check_in(
    request: CheckInRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    booking = await booking_service.check_in(request, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/check-out", response_model=Booking)
async def check_out(
    request: CheckOutRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    booking = await booking_service.check_out(request, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/modify", response_model=Booking)
async def modify_booking(
    request: ModifyBookingRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    """
    Change dates, room type or room count.

    All or nothing: when the new allocation does not fit the booking is left
    exactly as it was.
    """
    booking = await booking_service.modify(request, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    """Cancel a booking, applying its cancellation policy to the amount paid."""
    booking = await booking_service.cancel(request, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/reject", response_model=Booking)
async def reject_booking(
    request: RejectBookingRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    booking = await booking_service.reject(request, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/no-show", response_model=Booking)
async def mark_no_show(
    request: BookingIdRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    booking = await booking_service.mark_no_show(request.booking_id, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/notes", response_model=Booking)
async def update_notes(
    request: UpdateNotesRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    booking = await booking_service.update_notes(request, actor=actor)
    return _convert_booking_to_schema(booking)


@router.post("/get", response_model=Booking)
async def get_booking(
    request: BookingIdRequest,
    booking_service: BookingService = BookingServiceDependency,
) -> Booking:
    booking = await booking_service.get_booking(request.booking_id)
    return _convert_booking_to_schema(booking)


@router.post("/list", response_model=ListBookingsResponse)
async def list_bookings(
    request: ListBookingsRequest,
    booking_service: BookingService = BookingServiceDependency,
) -> ListBookingsResponse:
    """List bookings matching the filters, paginated by cursor."""
    bookings, next_cursor = await booking_service.list_bookings(request)
    return ListBookingsResponse(
        items=[_convert_booking_to_schema(booking) for booking in bookings],
        next_cursor=next_cursor,
    )


@router.post("/cancellation-quote", response_model=CancellationQuote)
async def preview_cancellation_fee(
    request: BookingIdRequest,
    booking_service: BookingService = BookingServiceDependency,
) -> CancellationQuote:
    """
    Preview the fee and refund of cancelling now.

    Advisory only: the fee is recomputed when the cancellation is committed.
    """
    quote = await booking_service.preview_cancellation_fee(request.booking_id)
    return CancellationQuote(**quote)


@router.post("/audit", response_model=AuditTrail)
async def audit_trail(
    request: BookingIdRequest,
    booking_service: BookingService = BookingServiceDependency,
) -> AuditTrail:
    entries = await booking_service.audit_trail(request.booking_id)
    return AuditTrail(
        booking_id=request.booking_id,
        entries=[AuditEntry.model_validate(entry) for entry in entries],
    )
