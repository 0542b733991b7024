"""Unit tests for the catalog service and stay pricing."""

from uuid import uuid4

import pytest

from conftest import booking_request, create_catalog
from lodging.core.exceptions import NotFoundError, ValidationError
from lodging.schemas.catalog import CreatePropertyRequest, CreateRatePlanRequest, CreateRoomTypeRequest
from lodging.services.catalog_service import CatalogService, get_room_type_or_raise, price_stay


@pytest.mark.asyncio
async def test_room_type_inherits_property_currency(session_factory, clock):
    async with session_factory() as session:
        service = CatalogService(session, clock=clock)
        prop = await service.create_property(CreatePropertyRequest(name="Hill Retreat", currency="EUR"))
        chalet = await service.create_room_type(
            CreateRoomTypeRequest(property_id=prop.id, name="Chalet", base_capacity=4, base_rate=12000)
        )
        dorm = await service.create_room_type(
            CreateRoomTypeRequest(
                property_id=prop.id, name="Dorm Bed", base_capacity=20, base_rate=2500, currency="USD"
            )
        )

        assert chalet.currency == "EUR"
        assert dorm.currency == "USD"
        assert [room_type.name for room_type in await service.list_room_types(prop.id)] == ["Chalet", "Dorm Bed"]


@pytest.mark.asyncio
async def test_unknown_parents_are_not_found(session_factory, clock):
    async with session_factory() as session:
        service = CatalogService(session, clock=clock)

        with pytest.raises(NotFoundError):
            await service.create_room_type(
                CreateRoomTypeRequest(property_id=uuid4(), name="Ghost", base_capacity=1, base_rate=100)
            )
        with pytest.raises(NotFoundError):
            await service.create_rate_plan(CreateRatePlanRequest(room_type_id=uuid4(), name="Ghost", nightly_rate=1))
        with pytest.raises(NotFoundError):
            await service.list_rate_plans(uuid4())


@pytest.mark.asyncio
async def test_price_stay(session_factory, catalog, clock):
    async with session_factory() as session:
        service = CatalogService(session, clock=clock)
        room_type = await get_room_type_or_raise(session, catalog.room_type_id)

        assert await price_stay(session, room_type, nights=3, rooms=2) == (catalog.base_rate * 6, None)

        plan = await service.create_rate_plan(
            CreateRatePlanRequest(room_type_id=catalog.room_type_id, name="Member", nightly_rate=9000)
        )
        assert await price_stay(session, room_type, nights=3, rooms=2) == (9000 * 6, plan.id)
        assert await price_stay(session, room_type, nights=1, rooms=1, rate_plan_id=plan.id) == (9000, plan.id)

        with pytest.raises(NotFoundError):
            await price_stay(session, room_type, nights=1, rooms=1, rate_plan_id=uuid4())


@pytest.mark.asyncio
async def test_rate_plan_of_another_room_type_is_rejected(session_factory, catalog, clock):
    other = await create_catalog(session_factory, clock)
    async with session_factory() as session:
        plan = await CatalogService(session, clock=clock).create_rate_plan(
            CreateRatePlanRequest(room_type_id=other.room_type_id, name="Other", nightly_rate=5000)
        )
        room_type = await get_room_type_or_raise(session, catalog.room_type_id)

        with pytest.raises(ValidationError):
            await price_stay(session, room_type, nights=1, rooms=1, rate_plan_id=plan.id)


@pytest.mark.asyncio
async def test_booking_room_type_must_belong_to_property(booking_service, session_factory, catalog, clock):
    other = await create_catalog(session_factory, clock)

    with pytest.raises(ValidationError):
        await booking_service.create(booking_request(catalog, room_type_id=other.room_type_id))
