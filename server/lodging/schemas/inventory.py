"""Inventory-related Pydantic schemas."""

import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AvailabilityRequest(BaseModel):
    """Nights [start, end) of one room type."""

    room_type_id: UUID
    start: datetime.date
    end: datetime.date


class SetCapacityRequest(AvailabilityRequest):
    """Request schema for setting the total capacity of a date range."""

    total_capacity: int = Field(..., ge=0, le=10000)


class InventoryNight(BaseModel):
    date: datetime.date
    total_capacity: int
    holds: int
    confirmed: int
    free_to_sell: int


class Availability(BaseModel):
    room_type_id: UUID
    nights: list[InventoryNight]


class CreateBufferRuleRequest(BaseModel):
    """Overbooking buffer for the nights [start_date, end_date], both inclusive."""

    property_id: UUID
    room_type_id: Optional[UUID] = Field(None, description="Omit to cover every room type of the property")
    start_date: datetime.date
    end_date: datetime.date
    percent: int = Field(..., ge=-100, le=1000, description="Added to base capacity, rounded down")
    days_of_week: Optional[str] = Field(
        None,
        max_length=64,
        description='Monday-first mask such as "0000011" or a list such as "fri,sat"',
    )
    notes: Optional[str] = Field(None, max_length=2000)
    is_active: bool = True


class UpdateBufferRuleRequest(BaseModel):
    rule_id: UUID
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    percent: Optional[int] = Field(None, ge=-100, le=1000)
    days_of_week: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None


class BufferRuleListRequest(BaseModel):
    property_id: UUID
    room_type_id: Optional[UUID] = None


class BufferRuleIdRequest(BaseModel):
    rule_id: UUID


class BufferRule(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    property_id: UUID
    room_type_id: Optional[UUID]
    start_date: datetime.date
    end_date: datetime.date
    percent: int
    days_of_week: Optional[str]
    notes: Optional[str]
    is_active: bool
    created_at: datetime.datetime
    updated_at: datetime.datetime
