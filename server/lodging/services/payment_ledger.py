"""
Append-only payment ledger.

Balances are always recomputed from the full set of entries for a booking,
never cached. A completed entry is only ever offset by a later signed
refund entry; the one thing that changes on a charge is its refund
bookkeeping (``refunded_amount`` and the REFUNDED status once fully offset).
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..core.exceptions import ConflictError, InvariantViolationError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.payment import SETTLED_STATUSES, Payment, PaymentMethod, PaymentStatus

logger = logging.getLogger(__name__)


class PaymentLedger:
    """Payment and refund bookkeeping for bookings."""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    async def append(
        self,
        session: AsyncSession,
        booking: Booking,
        amount: int,
        method: PaymentMethod,
        status: PaymentStatus = PaymentStatus.COMPLETED,
        external_txn_id: Optional[str] = None,
        reason: Optional[str] = None,
        actor: str = "system",
        currency: Optional[str] = None,
    ) -> Payment:
        """
        Append one entry. Negative amounts are only accepted as adjustments.

        Raises:
            ValidationError: On a zero amount, an unexpected negative amount
                or a currency different from the booking's
        """
        if amount == 0:
            raise ValidationError(detail="Payment amount must not be zero", errors={"amount": amount})
        if amount < 0 and method is not PaymentMethod.ADJUSTMENT:
            raise ValidationError(
                detail="Negative amounts are only allowed for adjustments; use a refund instead",
                errors={"amount": amount, "method": method.value},
            )
        if currency is not None and currency != booking.currency:
            raise ValidationError(
                detail=f"Payment currency {currency} does not match booking currency {booking.currency}",
                errors={"currency": currency},
            )
        if status in (PaymentStatus.REFUNDED,):
            raise ValidationError(detail="New entries cannot be created as REFUNDED")

        now = self.clock()
        payment = Payment(
            booking_id=booking.id,
            amount=amount,
            currency=booking.currency,
            method=method.value,
            status=status.value,
            external_txn_id=external_txn_id,
            refunded_amount=0,
            reason=reason,
            recorded_by=actor,
            created_at=now,
            updated_at=now,
        )
        session.add(payment)
        await session.flush()

        metrics_collector.record_payment(method.value, status.value)
        logger.info(
            "Payment entry appended",
            extra={
                "payment_id": payment.id,
                "booking_id": str(booking.id),
                "amount": amount,
                "method": method.value,
                "status": status.value,
                "actor": actor,
            }
        )
        return payment

    async def entries(self, session: AsyncSession, booking_id: UUID) -> list[Payment]:
        stmt = select(Payment).where(Payment.booking_id == booking_id).order_by(Payment.id)
        return list((await session.execute(stmt)).scalars())

    async def settled_total(self, session: AsyncSession, booking_id: UUID) -> int:
        """Net money moved for a booking: settled charges minus refunds."""
        stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.booking_id == booking_id,
            Payment.status.in_([status.value for status in SETTLED_STATUSES]),
        )
        return int((await session.execute(stmt)).scalar_one())

    async def amount_paid(self, session: AsyncSession, booking_id: UUID) -> int:
        """Money the guest actually paid, net of refunds; adjustments excluded."""
        stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.booking_id == booking_id,
            Payment.status.in_([status.value for status in SETTLED_STATUSES]),
            Payment.method != PaymentMethod.ADJUSTMENT.value,
        )
        return int((await session.execute(stmt)).scalar_one())

    async def outstanding_balance(self, session: AsyncSession, booking: Booking) -> int:
        return booking.total_price - await self.settled_total(session, booking.id)

    async def get_payment_or_raise(self, session: AsyncSession, payment_id: int) -> Payment:
        payment = await session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError(resource_type="payment", resource_id=str(payment_id))
        return payment

    async def issue_refund(
        self,
        session: AsyncSession,
        payment: Payment,
        amount: int,
        reason: Optional[str] = None,
        actor: str = "system",
    ) -> Payment:
        """
        Offset part or all of a completed charge with a negative entry.

        Raises:
            ValidationError: If the payment is not a refundable charge or the
                amount exceeds what is left unrefunded
        """
        if amount <= 0:
            raise ValidationError(detail="Refund amount must be positive", errors={"amount": amount})
        if payment.is_refund or payment.amount <= 0 or payment.method == PaymentMethod.ADJUSTMENT.value:
            raise ValidationError(detail=f"Payment {payment.id} is not a refundable charge")
        if PaymentStatus(payment.status) is not PaymentStatus.COMPLETED:
            raise ValidationError(
                detail=f"Payment {payment.id} is {payment.status} and cannot be refunded",
                errors={"status": payment.status},
            )
        if amount > payment.refundable_amount:
            raise ValidationError(
                detail=(
                    f"Refund of {amount} exceeds the {payment.refundable_amount} "
                    f"still refundable on payment {payment.id}"
                ),
                errors={"amount": amount, "refundable": payment.refundable_amount},
            )

        now = self.clock()
        refund = Payment(
            booking_id=payment.booking_id,
            amount=-amount,
            currency=payment.currency,
            method=payment.method,
            status=PaymentStatus.COMPLETED.value,
            original_payment_id=payment.id,
            refunded_amount=0,
            reason=reason,
            recorded_by=actor,
            created_at=now,
            updated_at=now,
        )
        session.add(refund)

        payment.refunded_amount += amount
        payment.updated_at = now
        if payment.refunded_amount == payment.amount:
            payment.status = PaymentStatus.REFUNDED.value
        await session.flush()

        metrics_collector.record_payment(payment.method, "REFUND")
        logger.info(
            "Refund entry appended",
            extra={
                "payment_id": payment.id,
                "refund_id": refund.id,
                "booking_id": str(payment.booking_id),
                "amount": amount,
                "remaining_refundable": payment.refundable_amount,
                "actor": actor,
            }
        )
        return refund

    async def refund_amount(
        self,
        session: AsyncSession,
        booking: Booking,
        amount: int,
        reason: Optional[str] = None,
        actor: str = "system",
    ) -> list[Payment]:
        """Spread a refund over the booking's refundable charges, newest first."""
        if amount <= 0:
            return []

        charges = [
            entry for entry in reversed(await self.entries(session, booking.id))
            if entry.method != PaymentMethod.ADJUSTMENT.value and entry.refundable_amount > 0
        ]
        available = sum(charge.refundable_amount for charge in charges)
        if amount > available:
            raise InvariantViolationError(
                "Refund exceeds refundable charges",
                context={"booking_id": str(booking.id), "amount": amount, "refundable": available},
            )

        refunds = []
        remaining = amount
        for charge in charges:
            if remaining == 0:
                break
            portion = min(remaining, charge.refundable_amount)
            refunds.append(await self.issue_refund(session, charge, portion, reason=reason, actor=actor))
            remaining -= portion
        return refunds

    async def settle(
        self,
        session: AsyncSession,
        payment: Payment,
        status: PaymentStatus,
        external_txn_id: Optional[str] = None,
    ) -> Payment:
        """
        Record the gateway outcome of a pending entry.

        Raises:
            ConflictError: If the entry is no longer pending
            ValidationError: If the target status is not a settlement outcome
        """
        if status not in (PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            raise ValidationError(detail=f"Cannot settle a payment as {status.value}")
        if PaymentStatus(payment.status) is not PaymentStatus.PENDING:
            raise ConflictError(
                detail=f"Payment {payment.id} is already {payment.status}",
                conflicting_resource={"payment_id": payment.id, "status": payment.status},
            )

        payment.status = status.value
        if external_txn_id:
            payment.external_txn_id = external_txn_id
        payment.updated_at = self.clock()
        await session.flush()

        metrics_collector.record_payment(payment.method, status.value)
        logger.info(
            "Payment settled",
            extra={"payment_id": payment.id, "booking_id": str(payment.booking_id), "status": status.value},
        )
        return payment

    async def void_pending(self, session: AsyncSession, booking_id: UUID) -> list[Payment]:
        """Cancel every entry of a booking still awaiting its gateway outcome."""
        stmt = select(Payment).where(
            Payment.booking_id == booking_id,
            Payment.status == PaymentStatus.PENDING.value,
        ).order_by(Payment.id)
        voided = list((await session.execute(stmt)).scalars())
        if not voided:
            return voided

        now = self.clock()
        for payment in voided:
            payment.status = PaymentStatus.CANCELLED.value
            payment.updated_at = now
            metrics_collector.record_payment(payment.method, PaymentStatus.CANCELLED.value)
        await session.flush()

        logger.info(
            "Pending payments voided",
            extra={"booking_id": str(booking_id), "payment_ids": [payment.id for payment in voided]},
        )
        return voided
