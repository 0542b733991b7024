"""
Overbooking buffer rules.

A night's sellable capacity is the room type's base capacity scaled by the
buffer percent in force that night. The percent comes from the most specific
active rule covering the night: room type rules beat property-wide rules,
and among equally specific rules the most recently updated one wins. Nights
no rule covers use the property's default percent.

The buffer is applied when an inventory night is first materialised; an
explicit ``set-capacity`` afterwards overrides it.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..core.exceptions import NotFoundError, ValidationError
from ..models.buffer import BufferRule
from ..models.catalog import Property, RoomType
from ..schemas.inventory import BufferRuleListRequest, CreateBufferRuleRequest, UpdateBufferRuleRequest
from .catalog_service import get_property_or_raise, get_room_type_or_raise

logger = logging.getLogger(__name__)

DAY_NAMES = {
    "sun": 0, "sunday": 0,
    "mon": 1, "monday": 1,
    "tue": 2, "tues": 2, "tuesday": 2,
    "wed": 3, "wednesday": 3,
    "thu": 4, "thur": 4, "thurs": 4, "thursday": 4,
    "fri": 5, "friday": 5,
    "sat": 6, "saturday": 6,
}

# Fields an update may clear by sending null
NULLABLE_FIELDS = {"days_of_week", "notes"}


def sellable_capacity(base_capacity: int, percent: int) -> int:
    """Base capacity scaled by ``percent``, rounded down and never negative."""
    return max(0, base_capacity * (100 + percent) // 100)


def _sunday_first(day: date) -> int:
    return (day.weekday() + 1) % 7


def parse_days_of_week(days_of_week: Optional[str]) -> Optional[frozenset[int]]:
    """
    Parse a day filter into Sunday-first day numbers (0 = Sunday).

    Accepts a seven character Monday-first mask of 0s and 1s or a comma
    separated list of day names and numbers. ``None`` or blank means every day.

    Raises:
        ValueError: If the filter is neither form
    """
    if days_of_week is None or not days_of_week.strip():
        return None
    value = days_of_week.strip()

    if len(value) == 7 and set(value) <= {"0", "1"}:
        # Mask index 0 is Monday
        return frozenset((index + 1) % 7 for index, flag in enumerate(value) if flag == "1")

    days = set()
    for token in value.split(","):
        token = token.strip().lower()
        if not token:
            continue
        if token in DAY_NAMES:
            days.add(DAY_NAMES[token])
        elif token.isdigit() and int(token) <= 6:
            days.add(int(token))
        else:
            raise ValueError(f"Unrecognised day of week: {token!r}")
    if not days:
        raise ValueError("Day of week filter lists no days")
    return frozenset(days)


def day_matches(days_of_week: Optional[str], day: date) -> bool:
    allowed = parse_days_of_week(days_of_week)
    return allowed is None or _sunday_first(day) in allowed


def resolve_buffer_percent(
    rules: Iterable[BufferRule],
    room_type_id: UUID,
    day: date,
    default_percent: int = 0,
) -> int:
    """Percent in force for ``day``; ``rules`` are the property's rules."""
    candidates = [
        rule for rule in rules
        if rule.is_active
        and rule.room_type_id in (room_type_id, None)
        and rule.start_date <= day <= rule.end_date
        and day_matches(rule.days_of_week, day)
    ]
    if not candidates:
        return default_percent

    best = max(candidates, key=lambda rule: (rule.room_type_id is not None, rule.updated_at))
    return best.percent


async def buffered_capacities(
    session: AsyncSession,
    room_type: RoomType,
    days: Sequence[date],
) -> dict[date, int]:
    """Sellable capacity of ``room_type`` for each of ``days``."""
    if not days:
        return {}

    prop = await session.get(Property, room_type.property_id)
    default_percent = prop.default_buffer_percent if prop is not None else 0

    stmt = select(BufferRule).where(
        BufferRule.property_id == room_type.property_id,
        BufferRule.is_active.is_(True),
        or_(BufferRule.room_type_id == room_type.id, BufferRule.room_type_id.is_(None)),
        BufferRule.start_date <= max(days),
        BufferRule.end_date >= min(days),
    )
    rules = list((await session.execute(stmt)).scalars())

    return {
        day: sellable_capacity(
            room_type.base_capacity,
            resolve_buffer_percent(rules, room_type.id, day, default_percent),
        )
        for day in days
    }


class BufferRuleService:
    """Administration of overbooking buffer rules."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def _validate_scope(
        self,
        property_id: UUID,
        room_type_id: Optional[UUID],
    ) -> None:
        await get_property_or_raise(self.db, property_id)
        if room_type_id is not None:
            room_type = await get_room_type_or_raise(self.db, room_type_id)
            if room_type.property_id != property_id:
                raise ValidationError(
                    detail="Room type does not belong to the property",
                    errors={"room_type_id": str(room_type_id)},
                )

    @staticmethod
    def _validate_rule(start_date: date, end_date: date, days_of_week: Optional[str]) -> None:
        if end_date < start_date:
            raise ValidationError(
                detail="Buffer rule end date must not precede its start date",
                errors={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        try:
            parse_days_of_week(days_of_week)
        except ValueError as e:
            raise ValidationError(detail=str(e), errors={"days_of_week": days_of_week}) from e

    async def get_rule_or_raise(self, rule_id: UUID) -> BufferRule:
        rule = await self.db.get(BufferRule, rule_id)
        if rule is None:
            logger.warning("Buffer rule not found", extra={"rule_id": str(rule_id)})
            raise NotFoundError(resource_type="buffer_rule", resource_id=str(rule_id))
        return rule

    async def create_rule(self, request: CreateBufferRuleRequest) -> BufferRule:
        """
        Create a buffer rule for a property or one of its room types.

        Raises:
            NotFoundError: If the property or room type does not exist
            ValidationError: If the range or day filter is invalid
        """
        await self._validate_scope(request.property_id, request.room_type_id)
        self._validate_rule(request.start_date, request.end_date, request.days_of_week)

        now = self.clock()
        rule = BufferRule(
            property_id=request.property_id,
            room_type_id=request.room_type_id,
            start_date=request.start_date,
            end_date=request.end_date,
            percent=request.percent,
            days_of_week=request.days_of_week,
            notes=request.notes,
            is_active=request.is_active,
            created_at=now,
            updated_at=now,
        )
        self.db.add(rule)
        await self.db.commit()
        await self.db.refresh(rule)

        logger.info(
            "Buffer rule created",
            extra={
                "rule_id": str(rule.id),
                "property_id": str(rule.property_id),
                "room_type_id": str(rule.room_type_id) if rule.room_type_id else None,
                "percent": rule.percent,
            }
        )
        return rule

    async def list_rules(self, request: BufferRuleListRequest) -> list[BufferRule]:
        stmt = select(BufferRule).where(BufferRule.property_id == request.property_id)
        if request.room_type_id is not None:
            stmt = stmt.where(BufferRule.room_type_id == request.room_type_id)
        stmt = stmt.order_by(BufferRule.start_date, BufferRule.created_at)
        return list((await self.db.execute(stmt)).scalars())

    async def update_rule(self, request: UpdateBufferRuleRequest) -> BufferRule:
        """Apply the fields set on ``request`` to an existing rule."""
        rule = await self.get_rule_or_raise(request.rule_id)
        changes = {
            field: value
            for field, value in request.model_dump(exclude_unset=True, exclude={"rule_id"}).items()
            if value is not None or field in NULLABLE_FIELDS
        }

        start_date = changes.get("start_date", rule.start_date)
        end_date = changes.get("end_date", rule.end_date)
        days_of_week = changes.get("days_of_week", rule.days_of_week)
        self._validate_rule(start_date, end_date, days_of_week)

        for field, value in changes.items():
            setattr(rule, field, value)
        rule.updated_at = self.clock()

        await self.db.commit()
        await self.db.refresh(rule)

        logger.info(
            "Buffer rule updated",
            extra={"rule_id": str(rule.id), "fields": sorted(changes)}
        )
        return rule

    async def delete_rule(self, rule_id: UUID) -> None:
        rule = await self.get_rule_or_raise(rule_id)
        await self.db.delete(rule)
        await self.db.commit()

        logger.info("Buffer rule deleted", extra={"rule_id": str(rule_id)})
