"""Property, room type and rate plan Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import CURRENCY_PATTERN


class CreatePropertyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    currency: str = Field(..., pattern=CURRENCY_PATTERN, description="Default currency of the property")
    default_buffer_percent: int = Field(0, ge=-100, le=1000, description="Overbooking buffer for nights no rule covers")


class CreateRoomTypeRequest(BaseModel):
    property_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    base_capacity: int = Field(..., ge=0, le=10000, description="Rooms sellable per night unless overridden")
    base_rate: int = Field(..., ge=0, description="Nightly rate in minor units when no rate plan applies")
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN, description="Defaults to the property currency")
    max_occupancy: int = Field(2, ge=1, le=50, description="Guests per room")


class CreateRatePlanRequest(BaseModel):
    room_type_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    nightly_rate: int = Field(..., ge=0)


class RoomTypeIdRequest(BaseModel):
    room_type_id: UUID


class PropertyIdRequest(BaseModel):
    property_id: UUID


class Property(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    currency: str
    default_buffer_percent: int
    created_at: datetime


class RoomType(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    property_id: UUID
    name: str
    base_capacity: int
    base_rate: int
    currency: str
    max_occupancy: int


class RatePlan(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    room_type_id: UUID
    name: str
    nightly_rate: int
    currency: str
    is_active: bool
