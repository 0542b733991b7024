"""Payment router for the booking payment ledger."""

from fastapi import APIRouter

from ..core.dependencies import Actor, BookingServiceDependency
from ..schemas.booking import BookingIdRequest
from ..schemas.payment import (
    Balance,
    Payment,
    PaymentList,
    RecordPaymentRequest,
    RefundPaymentRequest,
    SettlePaymentRequest,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.booking_service import BookingService

router = APIRouter(prefix="/v1/payment", tags=["payment"], responses=PROBLEM_RESPONSES)


@router.post("/record", response_model=Payment)
async def record_payment(
    request: RecordPaymentRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Payment:
    """
    Append a payment entry to a booking's ledger.

    Negative amounts are only accepted for ADJUSTMENT entries; use the refund
    endpoint to give money back.
    """
    payment = await booking_service.record_payment(request, actor=actor)
    return Payment.model_validate(payment)


@router.post("/refund", response_model=Payment)
async def refund_payment(
    request: RefundPaymentRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Payment:
    """Refund part or all of a completed charge; returns the refund entry."""
    refund = await booking_service.refund_payment(request, actor=actor)
    return Payment.model_validate(refund)


@router.post("/settle", response_model=Payment)
async def settle_payment(
    request: SettlePaymentRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Payment:
    payment = await booking_service.settle_payment(request, actor=actor)
    return Payment.model_validate(payment)


@router.post("/balance", response_model=Balance)
async def outstanding_balance(
    request: BookingIdRequest,
    booking_service: BookingService = BookingServiceDependency,
) -> Balance:
    balance = await booking_service.outstanding_balance(request.booking_id)
    return Balance(**balance)


@router.post("/list", response_model=PaymentList)
async def list_payments(
    request: BookingIdRequest,
    booking_service: BookingService = BookingServiceDependency,
) -> PaymentList:
    payments = await booking_service.list_payments(request.booking_id)
    return PaymentList(
        booking_id=request.booking_id,
        items=[Payment.model_validate(payment) for payment in payments],
    )
