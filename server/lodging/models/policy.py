"""Cancellation policy model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from ..core.clock import utc_now
from ..core.database import Base


class CancellationPolicy(Base):
    """
    Ordered fee tiers keyed by hours before check-in.

    ``tiers`` is a JSON list of ``{"hours_before": int, "fee_percent": int}``
    or ``{"hours_before": int, "flat_fee": int}`` objects. A null
    ``property_id`` makes the policy the global fallback.
    """

    __tablename__ = "cancellation_policies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    property_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tiers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    no_show_fee_percent: Mapped[int | None] = mapped_column(Integer, nullable=True, default=100)
    no_show_flat_fee: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=expression.true()
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_policy_name_not_empty"),
        CheckConstraint(
            "no_show_fee_percent IS NULL OR (no_show_fee_percent >= 0 AND no_show_fee_percent <= 100)",
            name="ck_policy_no_show_percent_range",
        ),
        CheckConstraint(
            "no_show_flat_fee IS NULL OR no_show_flat_fee >= 0",
            name="ck_policy_no_show_flat_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return f"<CancellationPolicy(id={self.id}, name='{self.name}', property_id={self.property_id})>"
