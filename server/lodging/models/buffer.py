"""Overbooking buffer rule model definition."""

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from ..core.clock import utc_now
from ..core.database import Base


class BufferRule(Base):
    """
    Percentage added to (or taken off) a room type's base capacity.

    A rule covers the nights in [start_date, end_date] inclusive, for one
    room type or, with a null ``room_type_id``, every room type of the
    property. ``days_of_week`` narrows it either to a seven character
    Monday-first mask such as ``"0000011"`` or to a comma separated list of
    day names or numbers (0 = Sunday).
    """

    __tablename__ = "buffer_rules"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    property_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    room_type_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("room_types.id", ondelete="CASCADE"), nullable=True, index=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    percent: Mapped[int] = mapped_column(Integer, nullable=False)
    days_of_week: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=expression.true()
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_buffer_rule_date_range"),
        CheckConstraint("percent >= -100", name="ck_buffer_rule_percent_floor"),
    )

    def __repr__(self) -> str:
        return (
            f"<BufferRule(id={self.id}, property_id={self.property_id}, "
            f"room_type_id={self.room_type_id}, percent={self.percent})>"
        )
