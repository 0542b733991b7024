"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.booking import BookingSource, BookingStatus
from .common import CURRENCY_PATTERN, PaginatedResponse


class GuestDetails(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = Field(None, max_length=32)


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking in HOLD."""

    property_id: UUID = Field(..., description="Property being booked")
    room_type_id: UUID = Field(..., description="Room type being booked")
    rate_plan_id: Optional[UUID] = Field(None, description="Rate plan used for pricing")
    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date (not an occupied night)")
    guests: int = Field(1, ge=1, le=100)
    rooms: int = Field(1, ge=1, le=100)
    guest: GuestDetails
    source: BookingSource = Field(BookingSource.DIRECT_WEB, description="Channel the booking came through")
    external_reservation_id: Optional[str] = Field(None, max_length=128, description="Channel's own reservation id")
    commission_pct: Optional[Decimal] = Field(None, ge=0, le=100, description="Channel commission, OTA sources only")
    total_price: Optional[int] = Field(None, ge=0, description="Explicit price in minor units, overriding rate plans")
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    cancellation_policy_id: Optional[UUID] = None
    notes_guest: Optional[str] = Field(None, max_length=2000)
    notes_internal: Optional[str] = Field(None, max_length=2000)


class BookingIdRequest(BaseModel):
    booking_id: UUID = Field(..., description="Booking to act on")


class MarkPendingRequest(BookingIdRequest):
    reason: Optional[str] = Field(None, max_length=500)


class CheckInRequest(BookingIdRequest):
    room_numbers: list[str] = Field(default_factory=list, description="Room numbers assigned at the desk")


class CheckOutRequest(BookingIdRequest):
    final_charges: Optional[int] = Field(
        None, description="Outstanding balance the desk settles on; the difference is recorded as an adjustment"
    )


class ModifyBookingRequest(BookingIdRequest):
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    room_type_id: Optional[UUID] = None
    rooms: Optional[int] = Field(None, ge=1, le=100)
    total_price: Optional[int] = Field(None, ge=0, description="Explicit new price; recomputed from rates when omitted")


class CancelBookingRequest(BookingIdRequest):
    reason: Optional[str] = Field(None, max_length=500)


class RejectBookingRequest(BookingIdRequest):
    reason: str = Field(..., min_length=1, max_length=500)


class UpdateNotesRequest(BookingIdRequest):
    notes_internal: Optional[str] = Field(None, max_length=2000)
    notes_guest: Optional[str] = Field(None, max_length=2000)


class ListBookingsRequest(BaseModel):
    """Request schema for listing bookings."""

    property_id: Optional[UUID] = None
    room_type_id: Optional[UUID] = None
    statuses: list[BookingStatus] = Field(default_factory=list)
    source: Optional[BookingSource] = None
    guest_email: Optional[str] = None
    check_in_from: Optional[date] = None
    check_in_to: Optional[date] = None
    cursor: Optional[str] = Field(None, description="Pagination cursor")
    limit: int = Field(20, ge=1, le=100, description="Results per page")


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: BookingStatus
    source: BookingSource
    guest_name: str
    guest_email: Optional[str]
    guest_phone: Optional[str]
    property_id: UUID
    room_type_id: UUID
    rate_plan_id: Optional[UUID]
    check_in: date
    check_out: date
    guests: int
    rooms: int
    total_price: int
    currency: str
    commission_pct: Optional[Decimal]
    commission_amount: int
    hold_token: Optional[str]
    hold_expires_at: Optional[datetime]
    cancellation_policy_id: Optional[UUID]
    external_reservation_id: Optional[str]
    confirmation_code: Optional[str]
    room_assignments: list[str]
    cancellation_reason: Optional[str]
    notes_internal: Optional[str]
    notes_guest: Optional[str]
    created_at: datetime
    updated_at: datetime


class ListBookingsResponse(PaginatedResponse):
    items: list[Booking]


class CancellationQuote(BaseModel):
    """Advisory cancellation fee preview; the fee is recomputed on cancel."""

    booking_id: UUID
    fee: int
    refund: int
    amount_paid: int
    hours_until_check_in: float
    policy_id: Optional[str]
    policy_description: str
    tiers_applied: list[dict[str, Any]]


class AuditEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: UUID
    action: str
    actor: str
    details: dict[str, Any]
    created_at: datetime


class AuditTrail(BaseModel):
    booking_id: UUID
    entries: list[AuditEntry]
