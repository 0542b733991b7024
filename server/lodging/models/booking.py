"""Booking model definition."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utc_now
from ..core.database import Base


class BookingStatus(str, Enum):
    """Booking lifecycle states."""
    HOLD = "HOLD"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    BookingStatus.CHECKED_OUT,
    BookingStatus.CANCELLED,
    BookingStatus.NO_SHOW,
    BookingStatus.REJECTED,
})


class BookingSource(str, Enum):
    """Channel a booking arrived through."""
    DIRECT_WEB = "DIRECT_WEB"
    WALK_IN = "WALK_IN"
    PHONE = "PHONE"
    CORPORATE = "CORPORATE"
    OTA_BOOKING_COM = "OTA_BOOKING_COM"
    OTA_EXPEDIA = "OTA_EXPEDIA"
    OTA_AGODA = "OTA_AGODA"
    OTA_AIRBNB = "OTA_AIRBNB"
    OTA_MMT = "OTA_MMT"
    OTA_GOIBIBO = "OTA_GOIBIBO"
    OTA_YATRA = "OTA_YATRA"
    OTA_CLEARTRIP = "OTA_CLEARTRIP"

    @property
    def is_ota(self) -> bool:
        return self.value.startswith("OTA_")


class Booking(Base):
    """
    A guest's reservation of room-nights of one room type.

    The booking is the aggregate root: holds, payments and audit entries
    point back at it by id, it never holds collections of them.
    """

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Guest
    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)
    guest_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # What was booked
    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    room_type_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("room_types.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    rate_plan_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("rate_plans.id", ondelete="SET NULL"), nullable=True
    )
    check_in: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    rooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Money, in minor units
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    commission_pct: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    commission_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Lifecycle
    status: Mapped[BookingStatus] = mapped_column(
        String(20), nullable=False, default=BookingStatus.HOLD, index=True
    )
    source: Mapped[BookingSource] = mapped_column(
        String(32), nullable=False, default=BookingSource.DIRECT_WEB, index=True
    )
    hold_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    hold_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancellation_policy_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("cancellation_policies.id", ondelete="SET NULL"), nullable=True
    )
    external_reservation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    confirmation_code: Mapped[str | None] = mapped_column(String(16), nullable=True, unique=True)
    room_assignments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes_internal: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes_guest: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    checked_out_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("source", "external_reservation_id", name="uq_booking_source_external_id"),
        CheckConstraint("check_out > check_in", name="ck_booking_dates_ordered"),
        CheckConstraint("total_price >= 0", name="ck_booking_total_price_non_negative"),
        CheckConstraint("guests > 0", name="ck_booking_guests_positive"),
        CheckConstraint("rooms > 0", name="ck_booking_rooms_positive"),
        CheckConstraint("commission_amount >= 0", name="ck_booking_commission_non_negative"),
        CheckConstraint("length(guest_name) > 0", name="ck_booking_guest_name_not_empty"),
    )

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    @property
    def current_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def booking_source(self) -> BookingSource:
        return BookingSource(self.source)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, status={self.status}, room_type_id={self.room_type_id}, "
            f"check_in={self.check_in}, check_out={self.check_out}, rooms={self.rooms})>"
        )
