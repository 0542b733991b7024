"""
Time-boxed inventory holds and the expired-hold sweep.

A hold and the ledger counters it covers always move together inside one
transaction. The sweep takes the same booking, hold and inventory locks as
``BookingService.confirm``, so for any hold exactly one of expiry or
confirmation wins; the loser re-reads the hold under the lock and sees it is
no longer active.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, utc_now
from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ConcurrencyConflictError, HoldExpiredError
from ..core.locking import (
    KeyedLockRegistry,
    acquire_advisory_locks,
    booking_key,
    hold_key,
    release_session_advisory_lock,
    run_with_retry,
    try_session_advisory_lock,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.hold import HoldRecord, HoldStatus
from ..models.inventory import AllocationSource
from .audit_log import AuditLog
from .inventory_ledger import InventoryLedger, lock_keys
from .state_machine import apply_transition

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "sweep:holds"
HOLD_EXPIRED_REASON = "HOLD_EXPIRED"


@dataclass
class SweepResult:
    """Outcome of one sweep pass."""

    processed: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0
    overlapped: bool = False


def hold_lock_keys(hold: HoldRecord) -> list[str]:
    return [
        booking_key(hold.booking_id),
        hold_key(hold.hold_token),
        *lock_keys(hold.room_type_id, hold.check_in, hold.check_out),
    ]


class HoldManager:
    """Creates, consumes, releases and expires holds."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: InventoryLedger,
        locks: KeyedLockRegistry,
        audit_log: Optional[AuditLog] = None,
        settings: Settings = default_settings,
        clock: Clock = utc_now,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.locks = locks
        self.audit_log = audit_log or AuditLog(clock)
        self.settings = settings
        self.clock = clock

    @staticmethod
    def new_token() -> str:
        return secrets.token_urlsafe(24)

    async def create_hold(self, session: AsyncSession, booking: Booking, now: datetime) -> HoldRecord:
        """
        Hold the booking's room-nights and record the hold.

        Raises:
            CapacityUnavailableError: If any night lacks capacity; nothing is held
        """
        await self.ledger.try_hold(
            session, booking.room_type_id, booking.check_in, booking.check_out, booking.rooms
        )

        hold = HoldRecord(
            hold_token=booking.hold_token or self.new_token(),
            booking_id=booking.id,
            property_id=booking.property_id,
            room_type_id=booking.room_type_id,
            check_in=booking.check_in,
            check_out=booking.check_out,
            rooms=booking.rooms,
            status=HoldStatus.ACTIVE.value,
            expires_at=now + timedelta(seconds=self.settings.hold_ttl_seconds),
            created_at=now,
        )
        session.add(hold)
        booking.hold_token = hold.hold_token
        booking.hold_expires_at = hold.expires_at
        await session.flush()

        metrics_collector.record_hold_created(booking.source)
        logger.info(
            "Hold created",
            extra={
                "hold_token": hold.hold_token,
                "booking_id": str(booking.id),
                "room_type_id": str(booking.room_type_id),
                "rooms": booking.rooms,
                "expires_at": hold.expires_at.isoformat(),
            }
        )
        return hold

    async def get_hold(self, session: AsyncSession, hold_token: Optional[str]) -> Optional[HoldRecord]:
        if not hold_token:
            return None
        stmt = select(HoldRecord).where(HoldRecord.hold_token == hold_token).with_for_update()
        return (await session.execute(stmt)).scalar_one_or_none()

    async def require_live_hold(self, session: AsyncSession, booking: Booking, now: datetime) -> HoldRecord:
        """
        The booking's hold, provided it is still active and unexpired.

        Raises:
            HoldExpiredError: If the hold is gone, was swept or its TTL passed
        """
        hold = await self.get_hold(session, booking.hold_token)
        if hold is None or not hold.is_active or hold.is_expired(now):
            logger.info(
                "Hold no longer live",
                extra={
                    "booking_id": str(booking.id),
                    "hold_token": booking.hold_token,
                    "hold_status": hold.status if hold else None,
                }
            )
            raise HoldExpiredError(
                booking.hold_token or "unknown",
                hold.expires_at if hold else booking.hold_expires_at,
            )
        return hold

    async def consume(self, session: AsyncSession, hold: HoldRecord, now: datetime) -> None:
        """Turn held room-nights into confirmed ones."""
        await self.ledger.commit_hold(session, hold.room_type_id, hold.check_in, hold.check_out, hold.rooms)
        hold.status = HoldStatus.CONSUMED.value
        hold.closed_at = now

    async def release(
        self,
        session: AsyncSession,
        hold: HoldRecord,
        now: datetime,
        status: HoldStatus = HoldStatus.RELEASED,
    ) -> None:
        """Give held room-nights back; the hold ends as RELEASED or EXPIRED."""
        await self.ledger.release(
            session, hold.room_type_id, hold.check_in, hold.check_out, hold.rooms, AllocationSource.HOLD
        )
        hold.status = status.value
        hold.closed_at = now

    async def reallocate(
        self,
        session: AsyncSession,
        hold: HoldRecord,
        room_type_id: UUID,
        check_in: date,
        check_out: date,
        rooms: int,
    ) -> None:
        """
        Move a live hold to a new allocation; the token and expiry stay the same.

        Raises:
            CapacityUnavailableError: If the new allocation cannot be held. The
                old allocation has already been given back by then, so the
                caller must roll back its transaction.
        """
        await self.ledger.release(
            session, hold.room_type_id, hold.check_in, hold.check_out, hold.rooms, AllocationSource.HOLD
        )
        await self.ledger.try_hold(session, room_type_id, check_in, check_out, rooms)
        hold.room_type_id = room_type_id
        hold.check_in = check_in
        hold.check_out = check_out
        hold.rooms = rooms

    def extend(self, booking: Booking, hold: HoldRecord, now: datetime, ttl_seconds: int) -> None:
        hold.expires_at = max(hold.expires_at, now + timedelta(seconds=ttl_seconds))
        booking.hold_expires_at = hold.expires_at

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Expire every active hold whose TTL has passed, oldest first.

        Safe to call concurrently and repeatedly: an overlapping call returns
        immediately with ``overlapped`` set, and each hold is re-checked under
        its locks before being expired.
        """
        now = now or self.clock()
        result = SweepResult()

        async with self.locks.try_hold(SWEEP_LOCK_KEY) as acquired:
            if not acquired:
                result.overlapped = True
                logger.info("Hold sweep already running, skipping")
                return result

            async with self.session_factory() as guard:
                if not await try_session_advisory_lock(guard, SWEEP_LOCK_KEY):
                    result.overlapped = True
                    logger.info("Hold sweep running in another process, skipping")
                    return result
                try:
                    await self._sweep_batch(now, result)
                finally:
                    await release_session_advisory_lock(guard, SWEEP_LOCK_KEY)

        metrics_collector.record_holds_expired(result.expired)
        if result.processed:
            logger.info(
                "Hold sweep completed",
                extra={
                    "processed": result.processed,
                    "expired": result.expired,
                    "skipped": result.skipped,
                    "failed": result.failed,
                    "swept_at": now.isoformat(),
                }
            )
        return result

    async def _sweep_batch(self, now: datetime, result: SweepResult) -> None:
        async with self.session_factory() as session:
            # Inclusive at expires_at, matching HoldRecord.is_expired
            stmt = (
                select(HoldRecord.hold_token)
                .where(HoldRecord.status == HoldStatus.ACTIVE.value, HoldRecord.expires_at <= now)
                .order_by(HoldRecord.expires_at)
                .limit(self.settings.hold_sweep_batch_size)
            )
            tokens = list((await session.execute(stmt)).scalars())

        for token in tokens:
            result.processed += 1
            try:
                expired = await run_with_retry(
                    lambda token=token: self._expire_one(token, now),
                    attempts=self.settings.concurrency_max_attempts,
                    backoff_seconds=self.settings.concurrency_backoff_seconds,
                    name="expire_hold",
                )
            except ConcurrencyConflictError:
                result.failed += 1
                metrics_collector.record_concurrency_conflict("expire_hold")
                logger.warning("Could not expire hold, will retry next sweep", extra={"hold_token": token})
                continue
            except Exception:
                result.failed += 1
                logger.exception(
                    "Unexpected error expiring hold, continuing sweep",
                    extra={"hold_token": token},
                )
                continue

            if expired:
                result.expired += 1
            else:
                result.skipped += 1

    async def _expire_one(self, hold_token: str, now: datetime) -> bool:
        """Expire a single hold; False if it was no longer active or expired by the time we locked it."""
        async with self.session_factory() as session:
            snapshot = await session.get(HoldRecord, hold_token)
            if snapshot is None or not snapshot.is_active:
                return False
            keys = hold_lock_keys(snapshot)

        async with self.locks.hold(keys):
            async with self.session_factory() as session:
                async with session.begin():
                    await acquire_advisory_locks(session, keys)
                    hold = await self.get_hold(session, hold_token)
                    if hold is None or not hold.is_active or not hold.is_expired(now):
                        return False
                    if set(hold_lock_keys(hold)) != set(keys):
                        raise ConcurrencyConflictError(
                            detail=f"Hold {hold_token} changed while waiting for locks",
                            resource=hold_key(hold_token),
                        )

                    await self.release(session, hold, now, status=HoldStatus.EXPIRED)

                    booking = await session.get(Booking, hold.booking_id, with_for_update=True)
                    details = {"hold_token": hold_token, "reason": HOLD_EXPIRED_REASON}
                    if booking is not None and booking.current_status is BookingStatus.HOLD:
                        details.update(apply_transition(booking, BookingStatus.CANCELLED, now, "expire"))
                        booking.cancellation_reason = HOLD_EXPIRED_REASON
                    if booking is not None:
                        await self.audit_log.append(session, booking.id, "HOLD_EXPIRED", "system", details)

        logger.info(
            "Hold expired and inventory released",
            extra={
                "hold_token": hold_token,
                "booking_id": str(hold.booking_id),
                "rooms": hold.rooms,
                "expires_at": hold.expires_at.isoformat(),
            }
        )
        return True
