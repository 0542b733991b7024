"""Per-date room inventory model definition."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utc_now
from ..core.database import Base
from ..core.exceptions import InvariantViolationError


class AllocationSource(str, Enum):
    """Which counter a release gives capacity back from."""
    HOLD = "hold"
    CONFIRMED = "confirmed"


class InventoryDay(Base):
    """
    Room-night capacity of one room type on one calendar date.

    free_to_sell = total_capacity - holds - confirmed, and never goes below
    zero. The counter methods enforce that in Python; the check constraints
    enforce it in the database.
    """

    __tablename__ = "inventory_days"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    room_type_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)
    total_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    holds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confirmed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("room_type_id", "day", name="uq_inventory_day_room_type_date"),
        CheckConstraint("total_capacity >= 0", name="ck_inventory_day_total_non_negative"),
        CheckConstraint("holds >= 0", name="ck_inventory_day_holds_non_negative"),
        CheckConstraint("confirmed >= 0", name="ck_inventory_day_confirmed_non_negative"),
        CheckConstraint(
            "holds + confirmed <= total_capacity",
            name="ck_inventory_day_free_to_sell_non_negative",
        ),
    )

    @property
    def free_to_sell(self) -> int:
        return self.total_capacity - self.holds - self.confirmed

    def _violation(self, detail: str, rooms: int) -> InvariantViolationError:
        return InvariantViolationError(
            detail,
            context={
                "room_type_id": str(self.room_type_id),
                "date": self.day.isoformat(),
                "rooms": rooms,
                "total_capacity": self.total_capacity,
                "holds": self.holds,
                "confirmed": self.confirmed,
            },
        )

    def apply_hold(self, rooms: int) -> None:
        if rooms <= 0 or rooms > self.free_to_sell:
            raise self._violation(f"Cannot hold {rooms} room(s) on {self.day}", rooms)
        self.holds += rooms

    def apply_commit(self, rooms: int) -> None:
        """Move rooms from holds to confirmed; free_to_sell is unchanged."""
        if rooms <= 0 or rooms > self.holds:
            raise self._violation(f"Cannot commit {rooms} held room(s) on {self.day}", rooms)
        self.holds -= rooms
        self.confirmed += rooms

    def apply_release(self, rooms: int, source: AllocationSource) -> None:
        """Give capacity back; a counter going negative is never clamped."""
        current = self.holds if source is AllocationSource.HOLD else self.confirmed
        if rooms <= 0 or rooms > current:
            raise self._violation(
                f"Cannot release {rooms} {source.value} room(s) on {self.day}", rooms
            )
        if source is AllocationSource.HOLD:
            self.holds -= rooms
        else:
            self.confirmed -= rooms

    def __repr__(self) -> str:
        return (
            f"<InventoryDay(room_type_id={self.room_type_id}, date={self.day}, "
            f"total={self.total_capacity}, holds={self.holds}, confirmed={self.confirmed})>"
        )
