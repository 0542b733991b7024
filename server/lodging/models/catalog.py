"""Property, room type and rate plan model definitions."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from ..core.clock import utc_now
from ..core.database import Base


class Property(Base):
    """A lodging property (hotel, hostel, resort) that sells room types."""

    __tablename__ = "properties"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    # Applied to nights no buffer rule covers
    default_buffer_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_property_name_not_empty"),
        CheckConstraint("length(currency) = 3", name="ck_property_currency_length"),
        CheckConstraint("default_buffer_percent >= -100", name="ck_property_buffer_floor"),
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name='{self.name}')>"


class RoomType(Base):
    """
    A sellable category of rooms within a property.

    ``base_capacity`` seeds the total capacity of inventory days that have not
    been explicitly configured; ``base_rate`` prices stays that carry no rate
    plan.
    """

    __tablename__ = "room_types"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    base_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    max_occupancy: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("base_capacity >= 0", name="ck_room_type_capacity_non_negative"),
        CheckConstraint("base_rate >= 0", name="ck_room_type_rate_non_negative"),
        CheckConstraint("max_occupancy > 0", name="ck_room_type_occupancy_positive"),
    )

    def __repr__(self) -> str:
        return f"<RoomType(id={self.id}, name='{self.name}', base_capacity={self.base_capacity})>"


class RatePlan(Base):
    """Nightly price for a room type, in minor currency units."""

    __tablename__ = "rate_plans"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    room_type_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    nightly_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=expression.true()
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("nightly_rate >= 0", name="ck_rate_plan_rate_non_negative"),
    )
