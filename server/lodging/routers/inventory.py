"""Inventory router for availability and capacity administration."""

import logging

from fastapi import APIRouter

from ..core.dependencies import Actor, BookingServiceDependency, BufferRuleServiceDependency
from ..schemas.inventory import (
    Availability,
    AvailabilityRequest,
    BufferRule,
    BufferRuleIdRequest,
    BufferRuleListRequest,
    CreateBufferRuleRequest,
    InventoryNight,
    SetCapacityRequest,
    UpdateBufferRuleRequest,
)
from ..services.booking_service import BookingService
from ..services.buffer_rules import BufferRuleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/inventory", tags=["inventory"])


def _convert_nights_to_schema(request: AvailabilityRequest, nights: list[dict]) -> Availability:
    return Availability(
        room_type_id=request.room_type_id,
        nights=[InventoryNight(**night) for night in nights],
    )


@router.post("/availability", response_model=Availability)
async def availability(
    request: AvailabilityRequest,
    booking_service: BookingService = BookingServiceDependency,
) -> Availability:
    """Per-night capacity, holds, confirmed rooms and free-to-sell for [start, end)."""
    nights = await booking_service.ledger.availability(request.room_type_id, request.start, request.end)
    return _convert_nights_to_schema(request, nights)


@router.post("/set-capacity", response_model=Availability)
async def set_capacity(
    request: SetCapacityRequest,
    actor: str = Actor,
    booking_service: BookingService = BookingServiceDependency,
) -> Availability:
    """
    Set the total capacity of every night in [start, end).

    Rejected as a whole with 409 if any night already has more rooms held
    or confirmed than the new capacity.
    """
    nights = await booking_service.ledger.set_capacity(
        request.room_type_id, request.start, request.end, request.total_capacity, actor
    )

    logger.info(
        "Capacity set via API",
        extra={
            "room_type_id": str(request.room_type_id),
            "start": request.start.isoformat(),
            "end": request.end.isoformat(),
            "total_capacity": request.total_capacity,
            "actor": actor,
        }
    )
    return _convert_nights_to_schema(request, nights)


@router.post("/buffer-rule/create", response_model=BufferRule)
async def create_buffer_rule(
    request: CreateBufferRuleRequest,
    actor: str = Actor,
    buffer_rule_service: BufferRuleService = BufferRuleServiceDependency,
) -> BufferRule:
    """
    Create an overbooking buffer rule.

    The rule applies to nights first materialised after it exists; nights
    already in the ledger keep their capacity until set-capacity changes it.
    """
    rule = await buffer_rule_service.create_rule(request)
    logger.info("Buffer rule created via API", extra={"rule_id": str(rule.id), "actor": actor})
    return BufferRule.model_validate(rule)


@router.post("/buffer-rule/list", response_model=list[BufferRule])
async def list_buffer_rules(
    request: BufferRuleListRequest,
    buffer_rule_service: BufferRuleService = BufferRuleServiceDependency,
) -> list[BufferRule]:
    rules = await buffer_rule_service.list_rules(request)
    return [BufferRule.model_validate(rule) for rule in rules]


@router.post("/buffer-rule/update", response_model=BufferRule)
async def update_buffer_rule(
    request: UpdateBufferRuleRequest,
    actor: str = Actor,
    buffer_rule_service: BufferRuleService = BufferRuleServiceDependency,
) -> BufferRule:
    rule = await buffer_rule_service.update_rule(request)
    logger.info("Buffer rule updated via API", extra={"rule_id": str(rule.id), "actor": actor})
    return BufferRule.model_validate(rule)


@router.post("/buffer-rule/delete", status_code=204)
async def delete_buffer_rule(
    request: BufferRuleIdRequest,
    actor: str = Actor,
    buffer_rule_service: BufferRuleService = BufferRuleServiceDependency,
) -> None:
    await buffer_rule_service.delete_rule(request.rule_id)
    logger.info("Buffer rule deleted via API", extra={"rule_id": str(request.rule_id), "actor": actor})
