"""Hold record model definition."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utc_now
from ..core.database import Base


class HoldStatus(str, Enum):
    """Hold status enumeration."""
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    RELEASED = "RELEASED"
    CONSUMED = "CONSUMED"


class HoldRecord(Base):
    """
    A time-boxed claim on room-nights, paired with a holds increment on
    every InventoryDay in [check_in, check_out).

    Leaving ACTIVE always goes with exactly one matching ledger mutation:
    CONSUMED moves the rooms to confirmed, EXPIRED and RELEASED give them back.
    """

    __tablename__ = "hold_records"

    hold_token: Mapped[str] = mapped_column(String(64), primary_key=True)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    property_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    room_type_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False
    )
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    rooms: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[HoldStatus] = mapped_column(
        String(20), nullable=False, default=HoldStatus.ACTIVE, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("rooms > 0", name="ck_hold_rooms_positive"),
        CheckConstraint("check_out > check_in", name="ck_hold_dates_ordered"),
    )

    @property
    def is_active(self) -> bool:
        return HoldStatus(self.status) is HoldStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def __repr__(self) -> str:
        return (
            f"<HoldRecord(hold_token={self.hold_token}, booking_id={self.booking_id}, "
            f"rooms={self.rooms}, status={self.status}, expires_at={self.expires_at})>"
        )
