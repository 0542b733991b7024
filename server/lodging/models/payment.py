"""Payment ledger entry model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utc_now
from ..core.database import Base


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    GATEWAY = "GATEWAY"
    OTA_COLLECT = "OTA_COLLECT"
    ADJUSTMENT = "ADJUSTMENT"
    OTHER = "OTHER"

    @property
    def uses_gateway(self) -> bool:
        return self in (PaymentMethod.CARD, PaymentMethod.GATEWAY)


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


# Entries whose money actually moved
SETTLED_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)


class Payment(Base):
    """
    One signed entry of a booking's payment ledger.

    Positive amounts are charges, negative amounts refunds (pointing at the
    charge they offset through ``original_payment_id``) or downward
    adjustments. Only ``status`` and ``refunded_amount`` of a charge ever
    change after insertion.
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING, index=True
    )
    external_txn_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    original_payment_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("payments.id", ondelete="SET NULL"), nullable=True
    )
    refunded_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by: Mapped[str] = mapped_column(String(255), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("amount != 0", name="ck_payment_amount_nonzero"),
        CheckConstraint("refunded_amount >= 0", name="ck_payment_refunded_non_negative"),
    )

    @property
    def is_refund(self) -> bool:
        return self.original_payment_id is not None

    @property
    def refundable_amount(self) -> int:
        """What is left of a completed charge that has not been refunded yet."""
        if self.amount <= 0 or PaymentStatus(self.status) is not PaymentStatus.COMPLETED:
            return 0
        return self.amount - self.refunded_amount

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, booking_id={self.booking_id}, amount={self.amount}, "
            f"method={self.method}, status={self.status})>"
        )
