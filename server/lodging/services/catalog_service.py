"""Catalog service for properties, room types, rate plans and stay pricing."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..core.exceptions import NotFoundError, ValidationError
from ..models.catalog import Property, RatePlan, RoomType
from ..schemas.catalog import CreatePropertyRequest, CreateRatePlanRequest, CreateRoomTypeRequest

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for catalog-related operations."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def create_property(self, request: CreatePropertyRequest) -> Property:
        prop = Property(
            name=request.name,
            currency=request.currency,
            default_buffer_percent=request.default_buffer_percent,
            created_at=self.clock(),
        )

        self.db.add(prop)
        await self.db.commit()
        await self.db.refresh(prop)

        logger.info(
            "Property created successfully",
            extra={"property_id": str(prop.id), "name": prop.name}
        )
        return prop

    async def create_room_type(self, request: CreateRoomTypeRequest) -> RoomType:
        """
        Create a room type under an existing property.

        Raises:
            NotFoundError: If property not found
        """
        prop = await get_property_or_raise(self.db, request.property_id)

        room_type = RoomType(
            property_id=prop.id,
            name=request.name,
            base_capacity=request.base_capacity,
            base_rate=request.base_rate,
            currency=request.currency or prop.currency,
            max_occupancy=request.max_occupancy,
            created_at=self.clock(),
        )

        self.db.add(room_type)
        await self.db.commit()
        await self.db.refresh(room_type)

        logger.info(
            "Room type created successfully",
            extra={
                "room_type_id": str(room_type.id),
                "property_id": str(prop.id),
                "base_capacity": room_type.base_capacity,
            }
        )
        return room_type

    async def create_rate_plan(self, request: CreateRatePlanRequest) -> RatePlan:
        room_type = await get_room_type_or_raise(self.db, request.room_type_id)

        rate_plan = RatePlan(
            room_type_id=room_type.id,
            name=request.name,
            nightly_rate=request.nightly_rate,
            currency=room_type.currency,
            is_active=True,
            created_at=self.clock(),
        )

        self.db.add(rate_plan)
        await self.db.commit()
        await self.db.refresh(rate_plan)

        logger.info(
            "Rate plan created successfully",
            extra={
                "rate_plan_id": str(rate_plan.id),
                "room_type_id": str(room_type.id),
                "nightly_rate": rate_plan.nightly_rate,
            }
        )
        return rate_plan

    async def list_room_types(self, property_id: UUID) -> list[RoomType]:
        await get_property_or_raise(self.db, property_id)
        stmt = select(RoomType).where(RoomType.property_id == property_id).order_by(RoomType.name)
        return list((await self.db.execute(stmt)).scalars())

    async def list_rate_plans(self, room_type_id: UUID) -> list[RatePlan]:
        await get_room_type_or_raise(self.db, room_type_id)
        stmt = (
            select(RatePlan)
            .where(RatePlan.room_type_id == room_type_id)
            .order_by(RatePlan.created_at.desc())
        )
        return list((await self.db.execute(stmt)).scalars())


async def get_property_or_raise(session: AsyncSession, property_id: UUID) -> Property:
    prop = await session.get(Property, property_id)
    if prop is None:
        logger.warning("Property not found", extra={"property_id": str(property_id)})
        raise NotFoundError(resource_type="property", resource_id=str(property_id))
    return prop


async def get_room_type_or_raise(session: AsyncSession, room_type_id: UUID) -> RoomType:
    room_type = await session.get(RoomType, room_type_id)
    if room_type is None:
        logger.warning("Room type not found", extra={"room_type_id": str(room_type_id)})
        raise NotFoundError(resource_type="room_type", resource_id=str(room_type_id))
    return room_type


async def price_stay(
    session: AsyncSession,
    room_type: RoomType,
    nights: int,
    rooms: int,
    rate_plan_id: Optional[UUID] = None,
) -> tuple[int, Optional[UUID]]:
    """
    Total price of a stay in minor units and the rate plan used.

    The nightly rate comes from the requested rate plan, else the newest
    active plan of the room type, else the room type's base rate.

    Raises:
        NotFoundError: If the requested rate plan does not exist
        ValidationError: If it belongs to another room type or is inactive
    """
    rate_plan: Optional[RatePlan] = None
    if rate_plan_id is not None:
        rate_plan = await session.get(RatePlan, rate_plan_id)
        if rate_plan is None:
            raise NotFoundError(resource_type="rate_plan", resource_id=str(rate_plan_id))
        if rate_plan.room_type_id != room_type.id or not rate_plan.is_active:
            raise ValidationError(
                detail=f"Rate plan {rate_plan_id} is not bookable for room type {room_type.id}",
                errors={"rate_plan_id": str(rate_plan_id)},
            )
    else:
        stmt = (
            select(RatePlan)
            .where(RatePlan.room_type_id == room_type.id, RatePlan.is_active.is_(True))
            .order_by(RatePlan.created_at.desc())
            .limit(1)
        )
        rate_plan = (await session.execute(stmt)).scalar_one_or_none()

    nightly_rate = rate_plan.nightly_rate if rate_plan else room_type.base_rate
    return nightly_rate * nights * rooms, rate_plan.id if rate_plan else None
