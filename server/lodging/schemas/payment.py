"""Payment-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.payment import PaymentMethod, PaymentStatus
from .common import CURRENCY_PATTERN


class RecordPaymentRequest(BaseModel):
    """Request schema for appending a payment ledger entry."""

    booking_id: UUID
    amount: int = Field(..., description="Minor units; negative only for ADJUSTMENT entries")
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.COMPLETED
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    external_txn_id: Optional[str] = Field(None, max_length=128)
    reason: Optional[str] = Field(None, max_length=500)


class RefundPaymentRequest(BaseModel):
    payment_id: int
    amount: int = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=500)


class SettlePaymentRequest(BaseModel):
    payment_id: int
    status: PaymentStatus
    external_txn_id: Optional[str] = Field(None, max_length=128)


class Payment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: UUID
    amount: int
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    external_txn_id: Optional[str]
    original_payment_id: Optional[int]
    refunded_amount: int
    reason: Optional[str]
    recorded_by: str
    created_at: datetime


class Balance(BaseModel):
    booking_id: UUID
    total_price: int
    settled: int
    outstanding: int
    currency: str


class PaymentList(BaseModel):
    booking_id: UUID
    items: list[Payment]
