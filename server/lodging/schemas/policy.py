"""Cancellation policy Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CancellationTierSchema(BaseModel):
    """One fee tier; exactly one of fee_percent or flat_fee is set."""

    hours_before: int = Field(..., ge=0, description="Tier applies when cancelling less than this many hours before check-in")
    fee_percent: Optional[int] = Field(None, ge=0, le=100, description="Fee as a percentage of the amount paid")
    flat_fee: Optional[int] = Field(None, ge=0, description="Flat fee in minor units")

    @model_validator(mode="after")
    def exactly_one_fee(self) -> "CancellationTierSchema":
        if (self.fee_percent is None) == (self.flat_fee is None):
            raise ValueError("exactly one of fee_percent or flat_fee is required")
        return self


class CreatePolicyRequest(BaseModel):
    """Request schema for creating a cancellation policy."""

    property_id: Optional[UUID] = Field(None, description="Owning property; omit for the global fallback policy")
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000, description="Guest-facing text; generated when omitted")
    tiers: list[CancellationTierSchema] = Field(default_factory=list)
    no_show_fee_percent: Optional[int] = Field(100, ge=0, le=100)
    no_show_flat_fee: Optional[int] = Field(None, ge=0)


class PolicyIdRequest(BaseModel):
    policy_id: UUID


class ListPoliciesRequest(BaseModel):
    property_id: Optional[UUID] = None
    include_inactive: bool = False


class CancellationPolicy(BaseModel):
    """Cancellation policy response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    property_id: Optional[UUID]
    name: str
    description: Optional[str]
    tiers: list[CancellationTierSchema]
    no_show_fee_percent: Optional[int]
    no_show_flat_fee: Optional[int]
    is_active: bool
    created_at: datetime
