"""Catalog router for properties, room types and rate plans."""

from fastapi import APIRouter

from ..core.dependencies import CatalogServiceDependency
from ..schemas.catalog import (
    CreatePropertyRequest,
    CreateRatePlanRequest,
    CreateRoomTypeRequest,
    Property,
    PropertyIdRequest,
    RatePlan,
    RoomType,
    RoomTypeIdRequest,
)
from ..services.catalog_service import CatalogService, get_property_or_raise

router = APIRouter(prefix="/v1/catalog", tags=["catalog"])


@router.post("/property/create", response_model=Property)
async def create_property(
    request: CreatePropertyRequest,
    catalog_service: CatalogService = CatalogServiceDependency,
) -> Property:
    prop = await catalog_service.create_property(request)
    return Property.model_validate(prop)


@router.post("/property/get", response_model=Property)
async def get_property(
    request: PropertyIdRequest,
    catalog_service: CatalogService = CatalogServiceDependency,
) -> Property:
    prop = await get_property_or_raise(catalog_service.db, request.property_id)
    return Property.model_validate(prop)


@router.post("/room-type/create", response_model=RoomType)
async def create_room_type(
    request: CreateRoomTypeRequest,
    catalog_service: CatalogService = CatalogServiceDependency,
) -> RoomType:
    """Create a room type; its buffered base capacity seeds every night not yet in the ledger."""
    room_type = await catalog_service.create_room_type(request)
    return RoomType.model_validate(room_type)


@router.post("/room-type/list", response_model=list[RoomType])
async def list_room_types(
    request: PropertyIdRequest,
    catalog_service: CatalogService = CatalogServiceDependency,
) -> list[RoomType]:
    room_types = await catalog_service.list_room_types(request.property_id)
    return [RoomType.model_validate(room_type) for room_type in room_types]


@router.post("/rate-plan/create", response_model=RatePlan)
async def create_rate_plan(
    request: CreateRatePlanRequest,
    catalog_service: CatalogService = CatalogServiceDependency,
) -> RatePlan:
    rate_plan = await catalog_service.create_rate_plan(request)
    return RatePlan.model_validate(rate_plan)


@router.post("/rate-plan/list", response_model=list[RatePlan])
async def list_rate_plans(
    request: RoomTypeIdRequest,
    catalog_service: CatalogService = CatalogServiceDependency,
) -> list[RatePlan]:
    rate_plans = await catalog_service.list_rate_plans(request.room_type_id)
    return [RatePlan.model_validate(rate_plan) for rate_plan in rate_plans]
