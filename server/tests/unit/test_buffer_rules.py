"""Unit tests for overbooking buffer rules."""

from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest

from conftest import booking_request
from lodging.core.exceptions import CapacityUnavailableError, NotFoundError, ValidationError
from lodging.models.buffer import BufferRule
from lodging.schemas.catalog import CreatePropertyRequest, CreateRoomTypeRequest
from lodging.schemas.inventory import BufferRuleListRequest, CreateBufferRuleRequest, UpdateBufferRuleRequest
from lodging.services.buffer_rules import (
    BufferRuleService,
    day_matches,
    parse_days_of_week,
    resolve_buffer_percent,
    sellable_capacity,
)
from lodging.services.catalog_service import CatalogService

WEDNESDAY = date(2025, 11, 5)
FRIDAY = date(2025, 11, 7)
SATURDAY = date(2025, 11, 8)
ROOM_TYPE = uuid4()


def _rule(percent, room_type_id=None, start=WEDNESDAY, end=SATURDAY, updated=1, is_active=True, **fields):
    return BufferRule(
        property_id=uuid4(),
        room_type_id=room_type_id,
        start_date=start,
        end_date=end,
        percent=percent,
        is_active=is_active,
        updated_at=datetime(2025, 10, 1) + timedelta(hours=updated),
        **fields,
    )


def test_sellable_capacity_rounds_down_and_floors_at_zero():
    assert sellable_capacity(5, 0) == 5
    assert sellable_capacity(5, 20) == 6
    assert sellable_capacity(5, 10) == 5
    assert sellable_capacity(7, -50) == 3
    assert sellable_capacity(5, -100) == 0


def test_day_filters():
    # Monday-first mask with only Friday and Saturday set
    assert parse_days_of_week("0000110") == frozenset({5, 6})
    assert day_matches("0000110", FRIDAY)
    assert not day_matches("0000110", WEDNESDAY)

    assert parse_days_of_week("fri, Saturday") == frozenset({5, 6})
    assert parse_days_of_week("0,3") == frozenset({0, 3})
    assert day_matches("3", WEDNESDAY)
    assert day_matches(None, WEDNESDAY)
    assert day_matches("  ", WEDNESDAY)

    with pytest.raises(ValueError):
        parse_days_of_week("funday")
    with pytest.raises(ValueError):
        parse_days_of_week("7")


def test_room_type_rule_beats_newer_property_rule():
    rules = [_rule(10, room_type_id=ROOM_TYPE, updated=1), _rule(50, updated=5)]
    assert resolve_buffer_percent(rules, ROOM_TYPE, WEDNESDAY) == 10


def test_most_recently_updated_rule_wins_within_a_scope():
    rules = [_rule(10, updated=1), _rule(30, updated=3), _rule(20, updated=2)]
    assert resolve_buffer_percent(rules, ROOM_TYPE, WEDNESDAY) == 30


def test_rules_that_do_not_cover_the_night_fall_back_to_default():
    rules = [
        _rule(40, is_active=False),
        _rule(40, start=FRIDAY, end=SATURDAY),
        _rule(40, room_type_id=uuid4()),
        _rule(40, days_of_week="fri,sat"),
    ]
    assert resolve_buffer_percent(rules, ROOM_TYPE, WEDNESDAY, default_percent=15) == 15
    assert resolve_buffer_percent([], ROOM_TYPE, WEDNESDAY) == 0
    assert resolve_buffer_percent(rules, ROOM_TYPE, FRIDAY, default_percent=15) == 40


def test_rule_end_date_is_inclusive():
    rules = [_rule(20, start=WEDNESDAY, end=WEDNESDAY)]
    assert resolve_buffer_percent(rules, ROOM_TYPE, WEDNESDAY) == 20
    assert resolve_buffer_percent(rules, ROOM_TYPE, WEDNESDAY + timedelta(days=1)) == 0


def _create_request(catalog, percent, **overrides):
    fields = dict(
        property_id=catalog.property_id,
        start_date=WEDNESDAY,
        end_date=WEDNESDAY + timedelta(days=1),
        percent=percent,
    )
    fields.update(overrides)
    return CreateBufferRuleRequest(**fields)


@pytest.mark.asyncio
async def test_property_rule_raises_sellable_capacity(booking_service, session_factory, catalog, clock):
    async with session_factory() as session:
        await BufferRuleService(session, clock=clock).create_rule(_create_request(catalog, 20))

    nights = await booking_service.ledger.availability(catalog.room_type_id, WEDNESDAY, FRIDAY + timedelta(days=1))
    assert [night["total_capacity"] for night in nights] == [6, 6, 5]

    booking = await booking_service.create(booking_request(catalog, rooms=6, nights=2))
    assert booking.rooms == 6

    nights = await booking_service.ledger.availability(catalog.room_type_id, WEDNESDAY, FRIDAY)
    assert [(night["total_capacity"], night["holds"], night["free_to_sell"]) for night in nights] == [(6, 6, 0)] * 2

    with pytest.raises(CapacityUnavailableError):
        await booking_service.create(booking_request(catalog, rooms=1, nights=1))


@pytest.mark.asyncio
async def test_negative_room_type_rule_on_weekends_only(booking_service, session_factory, catalog, clock):
    async with session_factory() as session:
        await BufferRuleService(session, clock=clock).create_rule(
            _create_request(
                catalog,
                -40,
                room_type_id=catalog.room_type_id,
                end_date=SATURDAY,
                days_of_week="0000110",
            )
        )

    nights = await booking_service.ledger.availability(catalog.room_type_id, WEDNESDAY, SATURDAY + timedelta(days=1))
    assert [night["total_capacity"] for night in nights] == [5, 5, 3, 3]


@pytest.mark.asyncio
async def test_existing_nights_keep_their_capacity(booking_service, session_factory, catalog, clock):
    await booking_service.create(booking_request(catalog, nights=1))

    async with session_factory() as session:
        await BufferRuleService(session, clock=clock).create_rule(_create_request(catalog, 100))

    nights = await booking_service.ledger.availability(catalog.room_type_id, WEDNESDAY, FRIDAY)
    assert [night["total_capacity"] for night in nights] == [5, 10]


@pytest.mark.asyncio
async def test_rule_administration(session_factory, catalog, clock):
    async with session_factory() as session:
        service = BufferRuleService(session, clock=clock)
        wide = await service.create_rule(_create_request(catalog, 10, notes="Festival week"))
        narrow = await service.create_rule(_create_request(catalog, 25, room_type_id=catalog.room_type_id))

        listed = await service.list_rules(BufferRuleListRequest(property_id=catalog.property_id))
        assert {rule.id for rule in listed} == {wide.id, narrow.id}
        listed = await service.list_rules(
            BufferRuleListRequest(property_id=catalog.property_id, room_type_id=catalog.room_type_id)
        )
        assert [rule.id for rule in listed] == [narrow.id]

        updated = await service.update_rule(
            UpdateBufferRuleRequest(rule_id=wide.id, percent=15, notes=None, is_active=False)
        )
        assert updated.percent == 15
        assert updated.notes is None
        assert updated.is_active is False
        assert updated.end_date == WEDNESDAY + timedelta(days=1)

        await service.delete_rule(narrow.id)
        with pytest.raises(NotFoundError):
            await service.get_rule_or_raise(narrow.id)


@pytest.mark.asyncio
async def test_rule_validation(session_factory, catalog, clock):
    async with session_factory() as session:
        service = BufferRuleService(session, clock=clock)

        with pytest.raises(ValidationError):
            await service.create_rule(_create_request(catalog, 10, end_date=WEDNESDAY - timedelta(days=1)))
        with pytest.raises(ValidationError):
            await service.create_rule(_create_request(catalog, 10, days_of_week="someday"))
        with pytest.raises(NotFoundError):
            await service.create_rule(_create_request(catalog, 10, property_id=uuid4()))
        with pytest.raises(NotFoundError):
            await service.create_rule(_create_request(catalog, 10, room_type_id=uuid4()))
        with pytest.raises(NotFoundError):
            await service.update_rule(UpdateBufferRuleRequest(rule_id=uuid4(), percent=5))


@pytest.mark.asyncio
async def test_property_default_buffer_applies_without_rules(booking_service, session_factory, clock):
    async with session_factory() as session:
        catalog_service = CatalogService(session, clock=clock)
        prop = await catalog_service.create_property(
            CreatePropertyRequest(name="Overbooked Arms", currency="INR", default_buffer_percent=50)
        )
        room_type = await catalog_service.create_room_type(
            CreateRoomTypeRequest(property_id=prop.id, name="Twin", base_capacity=4, base_rate=5000)
        )

    nights = await booking_service.ledger.availability(room_type.id, WEDNESDAY, FRIDAY)
    assert [night["total_capacity"] for night in nights] == [6, 6]
