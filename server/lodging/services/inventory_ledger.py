"""
Date-scoped room inventory ledger.

The mutating primitives (``try_hold``, ``commit_hold``, ``release``,
``allocate_confirmed``) run inside the caller's transaction and expect the
caller to already hold the inventory keys from ``lock_keys``. The
administrative operations open their own locked transaction.
"""

import logging
from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, stay_dates, utc_now
from ..core.config import Settings, settings as default_settings
from ..core.exceptions import (
    CapacityUnavailableError,
    ConflictError,
    InvalidDateRangeError,
    InvariantViolationError,
    NotFoundError,
)
from ..core.locking import KeyedLockRegistry, acquire_advisory_locks, inventory_key
from ..core.observability import metrics_collector
from ..models.catalog import RoomType
from ..models.inventory import AllocationSource, InventoryDay
from .buffer_rules import buffered_capacities

logger = logging.getLogger(__name__)


def lock_keys(room_type_id: UUID, check_in: date, check_out: date) -> list[str]:
    return [inventory_key(room_type_id, day) for day in stay_dates(check_in, check_out)]


class InventoryLedger:
    """Per (room type, date) capacity bookkeeping."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: KeyedLockRegistry,
        settings: Settings = default_settings,
        clock: Clock = utc_now,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.settings = settings
        self.clock = clock

    async def _rows(
        self,
        session: AsyncSession,
        room_type_id: UUID,
        days: Sequence[date],
        create_missing: bool,
    ) -> dict[date, InventoryDay]:
        """
        Load the inventory rows for ``days`` (row-locked on PostgreSQL).

        Missing rows are materialised from the room type's buffered capacity
        when ``create_missing`` is set; otherwise a missing row means a counter we
        are about to decrement was never incremented.
        """
        stmt = (
            select(InventoryDay)
            .where(InventoryDay.room_type_id == room_type_id, InventoryDay.day.in_(days))
            .with_for_update()
        )
        rows = {row.day: row for row in (await session.execute(stmt)).scalars()}

        missing = [day for day in days if day not in rows]
        if missing and not create_missing:
            raise InvariantViolationError(
                "Inventory rows missing for an existing allocation",
                context={
                    "room_type_id": str(room_type_id),
                    "missing_dates": [day.isoformat() for day in missing],
                },
            )
        if missing:
            room_type = await session.get(RoomType, room_type_id)
            if room_type is None:
                raise NotFoundError(resource_type="room_type", resource_id=str(room_type_id))
            capacities = await buffered_capacities(session, room_type, missing)
            for day in missing:
                row = InventoryDay(
                    room_type_id=room_type_id,
                    day=day,
                    total_capacity=capacities[day],
                    holds=0,
                    confirmed=0,
                    updated_at=self.clock(),
                )
                session.add(row)
                rows[day] = row
            await session.flush()

        return rows

    async def try_hold(
        self,
        session: AsyncSession,
        room_type_id: UUID,
        check_in: date,
        check_out: date,
        rooms: int,
    ) -> list[InventoryDay]:
        """
        Hold ``rooms`` on every night of [check_in, check_out), or on none.

        Every date is checked before any counter moves.

        Raises:
            CapacityUnavailableError: Naming the first date without enough free-to-sell
        """
        days = stay_dates(check_in, check_out)
        rows = await self._rows(session, room_type_id, days, create_missing=True)

        for day in days:
            row = rows[day]
            if row.free_to_sell < rooms:
                metrics_collector.record_capacity_rejection()
                logger.info(
                    "Hold rejected - insufficient capacity",
                    extra={
                        "room_type_id": str(room_type_id),
                        "date": day.isoformat(),
                        "requested_rooms": rooms,
                        "free_to_sell": row.free_to_sell,
                    }
                )
                raise CapacityUnavailableError(
                    room_type_id=str(room_type_id),
                    unavailable_date=day,
                    requested=rooms,
                    available=max(row.free_to_sell, 0),
                )

        for day in days:
            rows[day].apply_hold(rooms)
        await session.flush()

        return [rows[day] for day in days]

    async def commit_hold(
        self,
        session: AsyncSession,
        room_type_id: UUID,
        check_in: date,
        check_out: date,
        rooms: int,
    ) -> None:
        days = stay_dates(check_in, check_out)
        rows = await self._rows(session, room_type_id, days, create_missing=False)
        for day in days:
            rows[day].apply_commit(rooms)
        await session.flush()

    async def release(
        self,
        session: AsyncSession,
        room_type_id: UUID,
        check_in: date,
        check_out: date,
        rooms: int,
        source: AllocationSource,
    ) -> None:
        days = stay_dates(check_in, check_out)
        rows = await self._rows(session, room_type_id, days, create_missing=False)
        for day in days:
            rows[day].apply_release(rooms, source)
        await session.flush()

        logger.debug(
            "Inventory released",
            extra={
                "room_type_id": str(room_type_id),
                "check_in": check_in.isoformat(),
                "check_out": check_out.isoformat(),
                "rooms": rooms,
                "source": source.value,
            }
        )

    async def allocate_confirmed(
        self,
        session: AsyncSession,
        room_type_id: UUID,
        check_in: date,
        check_out: date,
        rooms: int,
    ) -> None:
        """Hold and immediately commit, for moving an already confirmed booking."""
        await self.try_hold(session, room_type_id, check_in, check_out, rooms)
        await self.commit_hold(session, room_type_id, check_in, check_out, rooms)

    def _validate_range(self, start: date, end: date) -> None:
        if end <= start:
            raise InvalidDateRangeError(start, end, detail="End date must be after start date")
        if (end - start).days > self.settings.max_stay_nights:
            raise InvalidDateRangeError(
                start, end, detail=f"Range exceeds {self.settings.max_stay_nights} days"
            )

    async def availability(self, room_type_id: UUID, start: date, end: date) -> list[dict]:
        """
        Read-only view of each night in [start, end).

        Nights without a row report the capacity they would be materialised
        with.
        """
        self._validate_range(start, end)
        async with self.session_factory() as session:
            room_type = await session.get(RoomType, room_type_id)
            if room_type is None:
                raise NotFoundError(resource_type="room_type", resource_id=str(room_type_id))

            stmt = select(InventoryDay).where(
                InventoryDay.room_type_id == room_type_id,
                InventoryDay.day >= start,
                InventoryDay.day < end,
            )
            rows = {row.day: row for row in (await session.execute(stmt)).scalars()}
            capacities = await buffered_capacities(
                session, room_type, [day for day in stay_dates(start, end) if day not in rows]
            )

        nights = []
        for day in stay_dates(start, end):
            row = rows.get(day)
            total = row.total_capacity if row else capacities[day]
            holds = row.holds if row else 0
            confirmed = row.confirmed if row else 0
            nights.append({
                "date": day,
                "total_capacity": total,
                "holds": holds,
                "confirmed": confirmed,
                "free_to_sell": total - holds - confirmed,
            })
        return nights

    async def set_capacity(
        self,
        room_type_id: UUID,
        start: date,
        end: date,
        total_capacity: int,
        actor: str,
    ) -> list[dict]:
        """
        Set the total capacity of every night in [start, end), all or nothing.

        Raises:
            ConflictError: If a night already has more rooms held or confirmed
        """
        self._validate_range(start, end)
        if total_capacity < 0:
            raise ConflictError(detail="Total capacity cannot be negative")

        keys = lock_keys(room_type_id, start, end)
        async with self.locks.hold(keys):
            async with self.session_factory() as session:
                async with session.begin():
                    await acquire_advisory_locks(session, keys)
                    days = stay_dates(start, end)
                    rows = await self._rows(session, room_type_id, days, create_missing=True)

                    for day in days:
                        row = rows[day]
                        allocated = row.holds + row.confirmed
                        if total_capacity < allocated:
                            logger.warning(
                                "Capacity change rejected - below current allocations",
                                extra={
                                    "room_type_id": str(room_type_id),
                                    "date": day.isoformat(),
                                    "requested_total": total_capacity,
                                    "allocated": allocated,
                                    "actor": actor,
                                }
                            )
                            raise ConflictError(
                                detail=(
                                    f"Cannot set capacity to {total_capacity} on {day.isoformat()}: "
                                    f"{allocated} room(s) already held or confirmed"
                                ),
                                conflicting_resource={
                                    "room_type_id": str(room_type_id),
                                    "date": day.isoformat(),
                                    "holds": row.holds,
                                    "confirmed": row.confirmed,
                                },
                            )

                    now = self.clock()
                    for day in days:
                        rows[day].total_capacity = total_capacity
                        rows[day].updated_at = now

        logger.info(
            "Inventory capacity updated",
            extra={
                "room_type_id": str(room_type_id),
                "start": start.isoformat(),
                "end": end.isoformat(),
                "total_capacity": total_capacity,
                "actor": actor,
            }
        )
        return await self.availability(room_type_id, start, end)
