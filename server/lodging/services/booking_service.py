"""
Booking lifecycle orchestration.

Every mutating operation follows the same envelope: read a snapshot of the
booking to learn which lock keys it needs, acquire those keys, open one
transaction, re-read the booking under the locks and apply the state change,
the inventory mutation and exactly one audit entry together. If the keys
changed between the snapshot and the locked re-read the attempt is abandoned
with a concurrency conflict and retried. Collaborators (payment gateway,
channel manager, notifications) are called only after the commit.
"""

import logging
import secrets
import string
from collections.abc import Awaitable, Callable, Sequence
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, check_in_instant, utc_now
from ..core.config import Settings, settings as default_settings
from ..core.exceptions import (
    ConcurrencyConflictError,
    InvalidDateRangeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..core.locking import (
    KeyedLockRegistry,
    acquire_advisory_locks,
    booking_key,
    external_reservation_key,
    hold_key,
    run_with_retry,
)
from ..core.observability import metrics_collector
from ..models.booking import TERMINAL_STATUSES, Booking, BookingSource, BookingStatus
from ..models.inventory import AllocationSource
from ..models.payment import Payment, PaymentMethod, PaymentStatus
from ..models.policy import CancellationPolicy
from ..schemas.booking import (
    CancelBookingRequest,
    CheckInRequest,
    CheckOutRequest,
    CreateBookingRequest,
    ListBookingsRequest,
    MarkPendingRequest,
    ModifyBookingRequest,
    RejectBookingRequest,
    UpdateNotesRequest,
)
from ..schemas.payment import RecordPaymentRequest, RefundPaymentRequest, SettlePaymentRequest
from .audit_log import AuditLog
from .cancellation_policy import FeeQuote, compute_fee, describe_policy, resolve_policy
from .catalog_service import get_room_type_or_raise, price_stay
from .collaborators import (
    ChannelManager,
    LoggingChannelManager,
    LoggingNotificationDispatcher,
    LoggingPaymentGateway,
    NotificationDispatcher,
    PaymentGateway,
)
from .hold_manager import HoldManager
from .inventory_ledger import InventoryLedger, lock_keys
from .payment_ledger import PaymentLedger
from .state_machine import apply_transition, ensure_modifiable, ensure_transition

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutation = Callable[[AsyncSession, Booking, datetime], Awaitable[T]]

# Events pushed to the channel manager for OTA bookings
CHANNEL_EVENTS = frozenset({"CONFIRMED", "MODIFIED", "CANCELLED", "REJECTED", "NO_SHOW"})

CONFIRMATION_CODE_ALPHABET = string.ascii_uppercase + string.digits


class BookingService:
    """Service for booking lifecycle operations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings = default_settings,
        clock: Clock = utc_now,
        locks: Optional[KeyedLockRegistry] = None,
        gateway: Optional[PaymentGateway] = None,
        channel_manager: Optional[ChannelManager] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.clock = clock
        self.locks = locks or KeyedLockRegistry(settings.lock_timeout_seconds)
        self.gateway = gateway or LoggingPaymentGateway()
        self.channel_manager = channel_manager or LoggingChannelManager()
        self.notifier = notifier or LoggingNotificationDispatcher()

        self.ledger = InventoryLedger(session_factory, self.locks, settings, clock)
        self.audit_log = AuditLog(clock)
        self.holds = HoldManager(session_factory, self.ledger, self.locks, self.audit_log, settings, clock)
        self.payments = PaymentLedger(clock)

    # Transaction envelope

    async def _execute(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await run_with_retry(
                operation,
                attempts=self.settings.concurrency_max_attempts,
                backoff_seconds=self.settings.concurrency_backoff_seconds,
                name=name,
            )
        except ConcurrencyConflictError:
            metrics_collector.record_concurrency_conflict(name)
            raise

    @staticmethod
    def _allocation_keys(booking: Booking) -> list[str]:
        keys = [booking_key(booking.id)]
        if booking.hold_token:
            keys.append(hold_key(booking.hold_token))
        keys.extend(lock_keys(booking.room_type_id, booking.check_in, booking.check_out))
        return keys

    @staticmethod
    def _booking_only_keys(booking: Booking) -> list[str]:
        return [booking_key(booking.id)]

    async def _mutate(
        self,
        booking_id: UUID,
        action: str,
        mutation: Mutation[T],
        keys_for: Optional[Callable[[Booking], list[str]]] = None,
    ) -> tuple[Booking, T]:
        """Run ``mutation`` on the booking inside the locked transaction envelope."""
        keys_for = keys_for or self._allocation_keys

        async def attempt() -> tuple[Booking, T]:
            async with self.session_factory() as session:
                snapshot = await self._get_booking_or_raise(session, booking_id)
                keys = keys_for(snapshot)

            async with self.locks.hold(keys):
                async with self.session_factory() as session:
                    async with session.begin():
                        await acquire_advisory_locks(session, keys)
                        booking = await self._get_booking_or_raise(session, booking_id, for_update=True)
                        if set(keys_for(booking)) != set(keys):
                            raise ConcurrencyConflictError(
                                detail=f"Booking {booking_id} changed while waiting for locks",
                                resource=booking_key(booking_id),
                            )
                        outcome = await mutation(session, booking, self.clock())
            return booking, outcome

        return await self._execute(action, attempt)

    async def _after_commit(
        self,
        booking: Booking,
        event: str,
        refunds: Sequence[tuple[Payment, int]] = (),
    ) -> None:
        """Hand the committed outcome to collaborators; their failures never undo it."""
        for original, amount in refunds:
            if not PaymentMethod(original.method).uses_gateway:
                continue
            try:
                await self.gateway.issue_refund(original, amount)
            except Exception:
                logger.exception(
                    "Gateway refund request failed",
                    extra={"booking_id": str(booking.id), "payment_id": original.id, "amount": amount},
                )

        if booking.booking_source.is_ota and event in CHANNEL_EVENTS:
            try:
                await self.channel_manager.push_booking(booking, event)
            except Exception:
                logger.exception(
                    "Channel manager update failed",
                    extra={"booking_id": str(booking.id), "event": event},
                )

        try:
            await self.notifier.dispatch(booking, event)
        except Exception:
            logger.exception(
                "Notification dispatch failed",
                extra={"booking_id": str(booking.id), "event": event},
            )

    # Validation helpers

    def _validate_stay(self, check_in: date, check_out: date, now: datetime, allow_past: bool = False) -> None:
        if check_out <= check_in:
            raise InvalidDateRangeError(check_in, check_out, detail="Check-out must be after check-in")
        if (check_out - check_in).days > self.settings.max_stay_nights:
            raise InvalidDateRangeError(
                check_in,
                check_out,
                detail=f"Stays are limited to {self.settings.max_stay_nights} nights",
            )
        if not allow_past and check_in < now.date():
            raise InvalidDateRangeError(check_in, check_out, detail="Check-in date is in the past")

    @staticmethod
    def _validate_channel(
        source: BookingSource,
        external_reservation_id: Optional[str],
        commission_pct: Optional[Decimal],
    ) -> None:
        if source.is_ota and not external_reservation_id:
            raise ValidationError(
                detail=f"Bookings from {source.value} need an external reservation id",
                errors={"external_reservation_id": None},
            )
        if not source.is_ota and commission_pct:
            raise ValidationError(
                detail="Commission only applies to OTA bookings",
                errors={"commission_pct": str(commission_pct)},
            )

    @staticmethod
    def _validate_occupancy(guests: int, rooms: int, max_occupancy: int) -> None:
        if guests < 1 or rooms < 1:
            raise ValidationError(
                detail="A booking needs at least one guest and one room",
                errors={"guests": guests, "rooms": rooms},
            )
        if guests > rooms * max_occupancy:
            raise ValidationError(
                detail=f"{guests} guests do not fit in {rooms} room(s) of {max_occupancy}",
                errors={"guests": guests, "rooms": rooms, "max_occupancy": max_occupancy},
            )

    @staticmethod
    def _commission(total_price: int, commission_pct: Optional[Decimal]) -> int:
        if not commission_pct:
            return 0
        amount = Decimal(total_price) * Decimal(commission_pct) / Decimal(100)
        return int(amount.to_integral_value(rounding=ROUND_HALF_UP))

    # Lookups

    async def _get_booking_or_raise(
        self, session: AsyncSession, booking_id: UUID, for_update: bool = False
    ) -> Booking:
        booking = await session.get(Booking, booking_id, with_for_update=for_update)
        if booking is None:
            logger.warning("Booking not found", extra={"booking_id": str(booking_id)})
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    @staticmethod
    async def _find_external(
        session: AsyncSession, source: BookingSource, external_reservation_id: str
    ) -> Optional[Booking]:
        stmt = select(Booking).where(
            Booking.source == source.value,
            Booking.external_reservation_id == external_reservation_id,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _new_confirmation_code(self, session: AsyncSession, length: int = 8) -> str:
        """Generate a confirmation code not yet used by any booking."""
        while True:
            code = "".join(secrets.choice(CONFIRMATION_CODE_ALPHABET) for _ in range(length))
            stmt = select(Booking.id).where(Booking.confirmation_code == code)
            if (await session.execute(stmt)).first() is None:
                return code

    async def _quote(
        self, session: AsyncSession, booking: Booking, now: datetime, no_show: bool = False
    ) -> tuple[FeeQuote, Optional[CancellationPolicy]]:
        policy = await resolve_policy(session, booking)
        amount_paid = await self.payments.amount_paid(session, booking.id)
        quote = compute_fee(
            policy,
            check_in_instant(booking.check_in, self.settings.check_in_hour),
            now,
            amount_paid,
            no_show=no_show,
        )
        return quote, policy

    async def _release_allocation(self, session: AsyncSession, booking: Booking, now: datetime) -> str:
        """Give back whatever the booking currently occupies; returns what was released."""
        status = booking.current_status
        if status in (BookingStatus.HOLD, BookingStatus.PENDING):
            hold = await self.holds.get_hold(session, booking.hold_token)
            if hold is None or not hold.is_active:
                return "none"
            await self.holds.release(session, hold, now)
            return AllocationSource.HOLD.value

        if status is BookingStatus.CONFIRMED:
            await self.ledger.release(
                session,
                booking.room_type_id,
                booking.check_in,
                booking.check_out,
                booking.rooms,
                AllocationSource.CONFIRMED,
            )
            return AllocationSource.CONFIRMED.value

        return "none"

    async def _refund(
        self, session: AsyncSession, booking: Booking, amount: int, reason: str, actor: str
    ) -> list[tuple[Payment, int]]:
        """Refund ``amount`` over the booking's charges; returns (charge, portion) pairs."""
        refunds = await self.payments.refund_amount(session, booking, amount, reason=reason, actor=actor)
        targets = []
        for refund in refunds:
            original = await session.get(Payment, refund.original_payment_id)
            targets.append((original, -refund.amount))
        return targets

    # Lifecycle operations

    async def create(self, request: CreateBookingRequest, actor: str = "system") -> Booking:
        """
        Hold inventory for a new booking and persist it in HOLD.

        Re-ingesting an OTA reservation that already exists returns the
        existing booking unchanged.

        Raises:
            InvalidDateRangeError: If the stay is empty, too long or in the past
            ValidationError: If guests, rooms or channel details are inconsistent
            NotFoundError: If the room type, rate plan or policy does not exist
            CapacityUnavailableError: If any night lacks capacity; nothing is held
        """
        source = BookingSource(request.source)
        self._validate_stay(request.check_in, request.check_out, self.clock())
        self._validate_channel(source, request.external_reservation_id, request.commission_pct)

        if source.is_ota:
            async with self.session_factory() as session:
                existing = await self._find_external(session, source, request.external_reservation_id)
            if existing is not None:
                logger.info(
                    "External reservation already ingested - returning existing booking",
                    extra={
                        "booking_id": str(existing.id),
                        "source": source.value,
                        "external_reservation_id": request.external_reservation_id,
                    }
                )
                return existing

        booking_id = uuid4()
        keys = [booking_key(booking_id), *lock_keys(request.room_type_id, request.check_in, request.check_out)]
        if source.is_ota:
            keys.append(external_reservation_key(source.value, request.external_reservation_id))

        async def attempt() -> tuple[Booking, bool]:
            async with self.locks.hold(keys):
                async with self.session_factory() as session:
                    async with session.begin():
                        await acquire_advisory_locks(session, keys)
                        if source.is_ota:
                            existing = await self._find_external(session, source, request.external_reservation_id)
                            if existing is not None:
                                return existing, False

                        now = self.clock()
                        booking = await self._build_booking(session, booking_id, source, request, now)
                        session.add(booking)
                        await session.flush()

                        hold = await self.holds.create_hold(session, booking, now)
                        await self.audit_log.append(
                            session,
                            booking.id,
                            "CREATE",
                            actor,
                            {
                                "to_status": BookingStatus.HOLD.value,
                                "source": source.value,
                                "room_type_id": str(booking.room_type_id),
                                "check_in": booking.check_in.isoformat(),
                                "check_out": booking.check_out.isoformat(),
                                "rooms": booking.rooms,
                                "total_price": booking.total_price,
                                "hold_token": hold.hold_token,
                                "hold_expires_at": hold.expires_at.isoformat(),
                            },
                        )
            return booking, True

        booking, created = await self._execute("create_booking", attempt)
        if not created:
            return booking

        logger.info(
            "Booking created on hold",
            extra={
                "booking_id": str(booking.id),
                "source": booking.source,
                "room_type_id": str(booking.room_type_id),
                "check_in": booking.check_in.isoformat(),
                "check_out": booking.check_out.isoformat(),
                "rooms": booking.rooms,
                "total_price": booking.total_price,
                "actor": actor,
            }
        )
        await self._after_commit(booking, "CREATED")
        return booking

    async def _build_booking(
        self,
        session: AsyncSession,
        booking_id: UUID,
        source: BookingSource,
        request: CreateBookingRequest,
        now: datetime,
    ) -> Booking:
        room_type = await get_room_type_or_raise(session, request.room_type_id)
        if room_type.property_id != request.property_id:
            raise ValidationError(
                detail=f"Room type {room_type.id} does not belong to property {request.property_id}",
                errors={"room_type_id": str(room_type.id), "property_id": str(request.property_id)},
            )
        self._validate_occupancy(request.guests, request.rooms, room_type.max_occupancy)

        currency = request.currency or room_type.currency
        if currency != room_type.currency:
            raise ValidationError(
                detail=f"Room type {room_type.id} is sold in {room_type.currency}",
                errors={"currency": currency},
            )

        if request.cancellation_policy_id is not None:
            if await session.get(CancellationPolicy, request.cancellation_policy_id) is None:
                raise NotFoundError(
                    resource_type="cancellation_policy", resource_id=str(request.cancellation_policy_id)
                )

        nights = (request.check_out - request.check_in).days
        total_price, rate_plan_id = await price_stay(
            session, room_type, nights, request.rooms, request.rate_plan_id
        )
        if request.total_price is not None:
            total_price = request.total_price

        return Booking(
            id=booking_id,
            guest_name=request.guest.name,
            guest_email=request.guest.email,
            guest_phone=request.guest.phone,
            property_id=request.property_id,
            room_type_id=room_type.id,
            rate_plan_id=rate_plan_id,
            check_in=request.check_in,
            check_out=request.check_out,
            guests=request.guests,
            rooms=request.rooms,
            total_price=total_price,
            currency=currency,
            commission_pct=request.commission_pct if source.is_ota else None,
            commission_amount=self._commission(total_price, request.commission_pct if source.is_ota else None),
            status=BookingStatus.HOLD.value,
            source=source.value,
            cancellation_policy_id=request.cancellation_policy_id,
            external_reservation_id=request.external_reservation_id,
            room_assignments=[],
            notes_guest=request.notes_guest,
            notes_internal=request.notes_internal,
            created_at=now,
            updated_at=now,
        )

    async def mark_pending(self, request: MarkPendingRequest, actor: str = "system") -> Booking:
        """Move a held booking to PENDING and stretch its hold to the pending TTL."""

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> None:
            ensure_transition(booking, BookingStatus.PENDING, "mark_pending")
            hold = await self.holds.require_live_hold(session, booking, now)
            self.holds.extend(booking, hold, now, self.settings.pending_hold_ttl_seconds)
            transition = apply_transition(booking, BookingStatus.PENDING, now, "mark_pending")
            await self.audit_log.append(
                session,
                booking.id,
                "MARK_PENDING",
                actor,
                {**transition, "reason": request.reason, "hold_expires_at": hold.expires_at.isoformat()},
            )

        booking, _ = await self._mutate(request.booking_id, "mark_pending", mutation)
        logger.info(
            "Booking marked pending",
            extra={"booking_id": str(booking.id), "hold_expires_at": booking.hold_expires_at.isoformat()},
        )
        await self._after_commit(booking, "PENDING")
        return booking

    async def confirm(self, booking_id: UUID, actor: str = "system") -> Booking:
        """
        Commit the booking's hold and confirm it.

        Raises:
            InvalidTransitionError: If the booking is not HOLD or PENDING
            HoldExpiredError: If the hold's TTL passed or it was already swept
        """

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> None:
            ensure_transition(booking, BookingStatus.CONFIRMED, "confirm")
            hold = await self.holds.require_live_hold(session, booking, now)
            await self.holds.consume(session, hold, now)
            booking.confirmation_code = await self._new_confirmation_code(session)
            booking.hold_expires_at = None
            transition = apply_transition(booking, BookingStatus.CONFIRMED, now, "confirm")
            await self.audit_log.append(
                session,
                booking.id,
                "CONFIRM",
                actor,
                {**transition, "hold_token": hold.hold_token, "confirmation_code": booking.confirmation_code},
            )

        booking, _ = await self._mutate(booking_id, "confirm", mutation)
        logger.info(
            "Booking confirmed successfully",
            extra={
                "booking_id": str(booking.id),
                "confirmation_code": booking.confirmation_code,
                "rooms": booking.rooms,
                "actor": actor,
            }
        )
        await self._after_commit(booking, "CONFIRMED")
        return booking

    async def check_in(self, request: CheckInRequest, actor: str = "system") -> Booking:
        """
        Check a confirmed guest in during the stay window.

        Raises:
            InvalidTransitionError: If not CONFIRMED or today is outside [check_in, check_out)
            ValidationError: If more room numbers than rooms are given
        """

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> None:
            ensure_transition(booking, BookingStatus.CHECKED_IN, "check_in")
            today = now.date()
            if not booking.check_in <= today < booking.check_out:
                raise InvalidTransitionError(
                    str(booking.id),
                    booking.status,
                    "check_in",
                    detail=(
                        f"Check-in is only possible from {booking.check_in.isoformat()} "
                        f"until {booking.check_out.isoformat()}"
                    ),
                )

            room_numbers = [number.strip() for number in request.room_numbers if number.strip()]
            if len(room_numbers) > booking.rooms or len(set(room_numbers)) != len(room_numbers):
                raise ValidationError(
                    detail=f"Expected at most {booking.rooms} distinct room number(s)",
                    errors={"room_numbers": request.room_numbers},
                )

            booking.room_assignments = room_numbers
            transition = apply_transition(booking, BookingStatus.CHECKED_IN, now, "check_in")
            await self.audit_log.append(
                session, booking.id, "CHECK_IN", actor, {**transition, "room_assignments": room_numbers}
            )

        booking, _ = await self._mutate(request.booking_id, "check_in", mutation, self._booking_only_keys)
        logger.info(
            "Guest checked in",
            extra={"booking_id": str(booking.id), "room_assignments": booking.room_assignments},
        )
        await self._after_commit(booking, "CHECKED_IN")
        return booking

    async def check_out(self, request: CheckOutRequest, actor: str = "system") -> Booking:
        """
        Check a guest out, reconciling the balance against ``final_charges``.

        The stay consumed its room-nights, so no inventory is released.
        """
        if request.final_charges is not None and request.final_charges < 0:
            raise ValidationError(
                detail="Final charges must not be negative",
                errors={"final_charges": request.final_charges},
            )

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> None:
            ensure_transition(booking, BookingStatus.CHECKED_OUT, "check_out")
            details: dict[str, Any] = {}
            if request.final_charges is not None:
                outstanding = await self.payments.outstanding_balance(session, booking)
                adjustment = outstanding - request.final_charges
                details.update(
                    outstanding_before=outstanding,
                    final_charges=request.final_charges,
                    adjustment=adjustment,
                )
                if adjustment:
                    entry = await self.payments.append(
                        session,
                        booking,
                        adjustment,
                        PaymentMethod.ADJUSTMENT,
                        reason="Check-out reconciliation",
                        actor=actor,
                    )
                    details["adjustment_payment_id"] = entry.id

            transition = apply_transition(booking, BookingStatus.CHECKED_OUT, now, "check_out")
            await self.audit_log.append(session, booking.id, "CHECK_OUT", actor, {**transition, **details})

        booking, _ = await self._mutate(request.booking_id, "check_out", mutation, self._booking_only_keys)
        logger.info("Guest checked out", extra={"booking_id": str(booking.id), "actor": actor})
        await self._after_commit(booking, "CHECKED_OUT")
        return booking

    async def modify(self, request: ModifyBookingRequest, actor: str = "system") -> Booking:
        """
        Move a booking to new dates, room type or room count.

        The old allocation is released and the new one taken in the same
        transaction; if the new one cannot be satisfied nothing changes.

        Raises:
            InvalidTransitionError: If the booking is past CONFIRMED or closed
            CapacityUnavailableError: If the new allocation does not fit
            HoldExpiredError: If a HOLD/PENDING booking's hold already lapsed
        """
        changes = (request.check_in, request.check_out, request.room_type_id, request.rooms, request.total_price)
        if all(value is None for value in changes):
            raise ValidationError(detail="No changes requested")

        def target(booking: Booking) -> tuple[UUID, date, date, int]:
            return (
                request.room_type_id or booking.room_type_id,
                request.check_in or booking.check_in,
                request.check_out or booking.check_out,
                request.rooms or booking.rooms,
            )

        def keys_for(booking: Booking) -> list[str]:
            room_type_id, check_in, check_out, _ = target(booking)
            return self._allocation_keys(booking) + lock_keys(room_type_id, check_in, check_out)

        async with self.session_factory() as session:
            snapshot = await self._get_booking_or_raise(session, request.booking_id)
        _, check_in, check_out, _ = target(snapshot)
        self._validate_stay(check_in, check_out, self.clock(), allow_past=request.check_in is None)

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> None:
            status = ensure_modifiable(booking)
            room_type_id, check_in, check_out, rooms = target(booking)
            self._validate_stay(check_in, check_out, now, allow_past=request.check_in is None)

            room_type = await get_room_type_or_raise(session, room_type_id)
            if room_type.property_id != booking.property_id or room_type.currency != booking.currency:
                raise ValidationError(
                    detail=f"Room type {room_type_id} cannot replace the booked room type",
                    errors={"room_type_id": str(room_type_id)},
                )
            self._validate_occupancy(booking.guests, rooms, room_type.max_occupancy)

            same_room_type = room_type_id == booking.room_type_id
            total_price, rate_plan_id = await price_stay(
                session,
                room_type,
                (check_out - check_in).days,
                rooms,
                booking.rate_plan_id if same_room_type else None,
            )
            if request.total_price is not None:
                total_price = request.total_price

            before = _allocation_details(booking)
            moved = (room_type_id, check_in, check_out, rooms) != (
                booking.room_type_id, booking.check_in, booking.check_out, booking.rooms
            )
            if moved and status is BookingStatus.CONFIRMED:
                await self.ledger.release(
                    session,
                    booking.room_type_id,
                    booking.check_in,
                    booking.check_out,
                    booking.rooms,
                    AllocationSource.CONFIRMED,
                )
                await self.ledger.allocate_confirmed(session, room_type_id, check_in, check_out, rooms)
            elif moved:
                hold = await self.holds.require_live_hold(session, booking, now)
                await self.holds.reallocate(session, hold, room_type_id, check_in, check_out, rooms)

            booking.room_type_id = room_type_id
            booking.check_in = check_in
            booking.check_out = check_out
            booking.rooms = rooms
            booking.rate_plan_id = rate_plan_id
            booking.total_price = total_price
            booking.commission_amount = self._commission(total_price, booking.commission_pct)
            booking.updated_at = now

            await self.audit_log.append(
                session,
                booking.id,
                "MODIFY",
                actor,
                {"status": status.value, "before": before, "after": _allocation_details(booking)},
            )

        booking, _ = await self._mutate(request.booking_id, "modify", mutation, keys_for)
        logger.info(
            "Booking modified",
            extra={
                "booking_id": str(booking.id),
                "room_type_id": str(booking.room_type_id),
                "check_in": booking.check_in.isoformat(),
                "check_out": booking.check_out.isoformat(),
                "rooms": booking.rooms,
                "total_price": booking.total_price,
            }
        )
        await self._after_commit(booking, "MODIFIED")
        return booking

    async def cancel(self, request: CancelBookingRequest, actor: str = "system") -> Booking:
        """
        Cancel a booking, charging the policy fee and refunding the rest.

        The fee is recomputed here regardless of any earlier preview.
        """

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> list[tuple[Payment, int]]:
            ensure_transition(booking, BookingStatus.CANCELLED, "cancel")
            quote, _ = await self._quote(session, booking, now)
            released = await self._release_allocation(session, booking, now)
            refunds = await self._refund(session, booking, quote.refund, "Cancellation refund", actor)
            voided = await self.payments.void_pending(session, booking.id)
            transition = apply_transition(booking, BookingStatus.CANCELLED, now, "cancel")
            booking.cancellation_reason = request.reason
            await self.audit_log.append(
                session,
                booking.id,
                "CANCEL",
                actor,
                {
                    **transition,
                    "reason": request.reason,
                    "released": released,
                    "fee": quote.as_dict(),
                    "refunded_payment_ids": [original.id for original, _ in refunds],
                    "voided_payment_ids": [payment.id for payment in voided],
                },
            )
            return refunds

        booking, refunds = await self._mutate(request.booking_id, "cancel", mutation)
        logger.info(
            "Booking cancelled successfully",
            extra={
                "booking_id": str(booking.id),
                "refund_count": len(refunds),
                "refund_total": sum(amount for _, amount in refunds),
                "actor": actor,
            }
        )
        await self._after_commit(booking, "CANCELLED", refunds)
        return booking

    async def reject(self, request: RejectBookingRequest, actor: str = "system") -> Booking:
        """Reject a booking on behalf of staff or the channel, refunding everything paid."""

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> list[tuple[Payment, int]]:
            ensure_transition(booking, BookingStatus.REJECTED, "reject")
            amount_paid = await self.payments.amount_paid(session, booking.id)
            released = await self._release_allocation(session, booking, now)
            refunds = await self._refund(session, booking, amount_paid, "Booking rejected", actor)
            voided = await self.payments.void_pending(session, booking.id)
            transition = apply_transition(booking, BookingStatus.REJECTED, now, "reject")
            booking.cancellation_reason = request.reason
            await self.audit_log.append(
                session,
                booking.id,
                "REJECT",
                actor,
                {
                    **transition,
                    "reason": request.reason,
                    "released": released,
                    "refund": amount_paid,
                    "refunded_payment_ids": [original.id for original, _ in refunds],
                    "voided_payment_ids": [payment.id for payment in voided],
                },
            )
            return refunds

        booking, refunds = await self._mutate(request.booking_id, "reject", mutation)
        logger.info("Booking rejected", extra={"booking_id": str(booking.id), "reason": request.reason})
        await self._after_commit(booking, "REJECTED", refunds)
        return booking

    async def mark_no_show(self, booking_id: UUID, actor: str = "system") -> Booking:
        """
        Record that a confirmed guest never arrived.

        Only allowed once the check-in date has fully elapsed. The no-show
        variant of the policy applies (by default the whole amount paid is kept).
        """

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> list[tuple[Payment, int]]:
            ensure_transition(booking, BookingStatus.NO_SHOW, "mark_no_show")
            if now.date() <= booking.check_in:
                raise InvalidTransitionError(
                    str(booking.id),
                    booking.status,
                    "mark_no_show",
                    detail=f"Check-in date {booking.check_in.isoformat()} has not elapsed yet",
                )
            quote, _ = await self._quote(session, booking, now, no_show=True)
            released = await self._release_allocation(session, booking, now)
            refunds = await self._refund(session, booking, quote.refund, "No-show refund", actor)
            voided = await self.payments.void_pending(session, booking.id)
            transition = apply_transition(booking, BookingStatus.NO_SHOW, now, "mark_no_show")
            await self.audit_log.append(
                session,
                booking.id,
                "NO_SHOW",
                actor,
                {
                    **transition,
                    "released": released,
                    "fee": quote.as_dict(),
                    "voided_payment_ids": [payment.id for payment in voided],
                },
            )
            return refunds

        booking, refunds = await self._mutate(booking_id, "mark_no_show", mutation)
        logger.info("Booking marked as no-show", extra={"booking_id": str(booking.id), "actor": actor})
        await self._after_commit(booking, "NO_SHOW", refunds)
        return booking

    async def mark_overdue_no_shows(self, now: Optional[datetime] = None, limit: int = 100) -> int:
        """Mark every CONFIRMED booking whose check-in date has passed as NO_SHOW."""
        now = now or self.clock()
        async with self.session_factory() as session:
            stmt = (
                select(Booking.id)
                .where(Booking.status == BookingStatus.CONFIRMED.value, Booking.check_in < now.date())
                .order_by(Booking.check_in)
                .limit(limit)
            )
            booking_ids = list((await session.execute(stmt)).scalars())

        marked = 0
        for booking_id in booking_ids:
            try:
                await self.mark_no_show(booking_id, actor="system")
            except (InvalidTransitionError, ConcurrencyConflictError) as e:
                logger.warning(
                    "Skipped automatic no-show",
                    extra={"booking_id": str(booking_id), "error": str(e)},
                )
                continue
            marked += 1
        return marked

    async def update_notes(self, request: UpdateNotesRequest, actor: str = "system") -> Booking:
        if request.notes_internal is None and request.notes_guest is None:
            raise ValidationError(detail="No notes given")

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> None:
            changed = {}
            if request.notes_internal is not None:
                booking.notes_internal = request.notes_internal
                changed["notes_internal"] = request.notes_internal
            if request.notes_guest is not None:
                booking.notes_guest = request.notes_guest
                changed["notes_guest"] = request.notes_guest
            booking.updated_at = now
            await self.audit_log.append(session, booking.id, "UPDATE_NOTES", actor, {"changed": changed})

        booking, _ = await self._mutate(request.booking_id, "update_notes", mutation, self._booking_only_keys)
        return booking

    # Reads

    async def get_booking(self, booking_id: UUID) -> Booking:
        async with self.session_factory() as session:
            return await self._get_booking_or_raise(session, booking_id)

    async def list_bookings(self, request: ListBookingsRequest) -> tuple[list[Booking], Optional[str]]:
        """
        Filtered listing ordered by id, with cursor pagination.

        Returns:
            The page of bookings and the cursor of the next page, if any
        """
        stmt = select(Booking)
        if request.property_id:
            stmt = stmt.where(Booking.property_id == request.property_id)
        if request.room_type_id:
            stmt = stmt.where(Booking.room_type_id == request.room_type_id)
        if request.statuses:
            stmt = stmt.where(Booking.status.in_([status.value for status in request.statuses]))
        if request.source:
            stmt = stmt.where(Booking.source == request.source.value)
        if request.guest_email:
            stmt = stmt.where(func.lower(Booking.guest_email) == request.guest_email.lower())
        if request.check_in_from:
            stmt = stmt.where(Booking.check_in >= request.check_in_from)
        if request.check_in_to:
            stmt = stmt.where(Booking.check_in <= request.check_in_to)

        if request.cursor:
            try:
                cursor_id = UUID(request.cursor)
            except ValueError:
                raise ValidationError(detail="Invalid pagination cursor", errors={"cursor": request.cursor})
            stmt = stmt.where(Booking.id > cursor_id)

        # Fetch one extra to determine if there's a next page
        stmt = stmt.order_by(Booking.id).limit(request.limit + 1)

        async with self.session_factory() as session:
            bookings = list((await session.execute(stmt)).scalars())

        has_next_page = len(bookings) > request.limit
        bookings = bookings[:request.limit]
        next_cursor = str(bookings[-1].id) if has_next_page and bookings else None

        logger.info(
            "Booking search completed",
            extra={"total_found": len(bookings), "has_next_page": has_next_page},
        )
        return bookings, next_cursor

    async def preview_cancellation_fee(self, booking_id: UUID) -> dict[str, Any]:
        """Advisory fee quote for cancelling now; cancel() recomputes."""
        async with self.session_factory() as session:
            booking = await self._get_booking_or_raise(session, booking_id)
            ensure_transition(booking, BookingStatus.CANCELLED, "cancel")
            quote, policy = await self._quote(session, booking, self.clock())

        return {
            "booking_id": booking.id,
            "fee": quote.fee,
            "refund": quote.refund,
            "amount_paid": quote.amount_paid,
            "hours_until_check_in": round(quote.hours_until_check_in, 2),
            "policy_id": quote.policy_id,
            "policy_description": describe_policy(policy),
            "tiers_applied": quote.tiers_applied,
        }

    async def audit_trail(self, booking_id: UUID) -> list:
        async with self.session_factory() as session:
            await self._get_booking_or_raise(session, booking_id)
            return await self.audit_log.list_entries(session, booking_id)

    # Payments

    @staticmethod
    def _ensure_accepts_money(booking: Booking, action: str) -> None:
        """A closed booking takes no new money; a checked-out one may still settle its bill."""
        status = booking.current_status
        if status in TERMINAL_STATUSES and status is not BookingStatus.CHECKED_OUT:
            raise InvalidTransitionError(
                str(booking.id),
                booking.status,
                action,
                detail=f"Booking is {booking.status} and accepts no further charges",
            )

    async def record_payment(self, request: RecordPaymentRequest, actor: str = "system") -> Payment:
        """
        Append a payment ledger entry for a booking.

        Pending card and gateway charges are handed to the payment gateway
        after commit; the outcome arrives through ``settle_payment``.
        """
        method = PaymentMethod(request.method)
        status = PaymentStatus(request.status)

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> Payment:
            if request.amount > 0:
                self._ensure_accepts_money(booking, "record_payment")
            payment = await self.payments.append(
                session,
                booking,
                request.amount,
                method,
                status=status,
                external_txn_id=request.external_txn_id,
                reason=request.reason,
                actor=actor,
                currency=request.currency,
            )
            await self.audit_log.append(
                session,
                booking.id,
                "PAYMENT_RECORDED",
                actor,
                {"payment_id": payment.id, "amount": payment.amount, "method": method.value, "status": status.value},
            )
            return payment

        booking, payment = await self._mutate(
            request.booking_id, "record_payment", mutation, self._booking_only_keys
        )

        if method.uses_gateway and status is PaymentStatus.PENDING:
            try:
                external_txn_id = await self.gateway.issue_charge(booking, payment.amount, payment.currency)
            except Exception:
                logger.exception(
                    "Gateway charge request failed",
                    extra={"booking_id": str(booking.id), "payment_id": payment.id},
                )
            else:
                if external_txn_id:
                    payment = await self._attach_charge_reference(booking.id, payment.id, external_txn_id)
        return payment

    async def _attach_charge_reference(self, booking_id: UUID, payment_id: int, external_txn_id: str) -> Payment:
        """Store the gateway reference of a charge unless the entry already carries one."""

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> Payment:
            payment = await self.payments.get_payment_or_raise(session, payment_id)
            if not payment.external_txn_id:
                payment.external_txn_id = external_txn_id
                payment.updated_at = now
            return payment

        _, payment = await self._mutate(booking_id, "attach_charge_reference", mutation, self._booking_only_keys)
        logger.info(
            "Gateway charge reference stored",
            extra={"booking_id": str(booking_id), "payment_id": payment_id, "external_txn_id": external_txn_id},
        )
        return payment

    async def _booking_id_for_payment(self, payment_id: int) -> UUID:
        async with self.session_factory() as session:
            payment = await self.payments.get_payment_or_raise(session, payment_id)
            return payment.booking_id

    async def refund_payment(self, request: RefundPaymentRequest, actor: str = "system") -> Payment:
        """Refund part or all of one completed charge."""
        booking_id = await self._booking_id_for_payment(request.payment_id)

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> tuple[Payment, Payment]:
            payment = await self.payments.get_payment_or_raise(session, request.payment_id)
            refund = await self.payments.issue_refund(
                session, payment, request.amount, reason=request.reason, actor=actor
            )
            await self.audit_log.append(
                session,
                booking.id,
                "REFUND",
                actor,
                {
                    "payment_id": payment.id,
                    "refund_id": refund.id,
                    "amount": request.amount,
                    "reason": request.reason,
                },
            )
            return payment, refund

        booking, (payment, refund) = await self._mutate(
            booking_id, "refund_payment", mutation, self._booking_only_keys
        )
        await self._after_commit(booking, "REFUNDED", [(payment, request.amount)])
        return refund

    async def settle_payment(self, request: SettlePaymentRequest, actor: str = "system") -> Payment:
        """Record the gateway outcome of a pending payment."""
        booking_id = await self._booking_id_for_payment(request.payment_id)

        async def mutation(session: AsyncSession, booking: Booking, now: datetime) -> Payment:
            payment = await self.payments.get_payment_or_raise(session, request.payment_id)
            if PaymentStatus(request.status) is PaymentStatus.COMPLETED:
                self._ensure_accepts_money(booking, "settle_payment")
            await self.payments.settle(
                session, payment, PaymentStatus(request.status), external_txn_id=request.external_txn_id
            )
            await self.audit_log.append(
                session,
                booking.id,
                "PAYMENT_SETTLED",
                actor,
                {"payment_id": payment.id, "status": payment.status, "external_txn_id": payment.external_txn_id},
            )
            return payment

        _, payment = await self._mutate(booking_id, "settle_payment", mutation, self._booking_only_keys)
        return payment

    async def outstanding_balance(self, booking_id: UUID) -> dict[str, Any]:
        async with self.session_factory() as session:
            booking = await self._get_booking_or_raise(session, booking_id)
            settled = await self.payments.settled_total(session, booking.id)

        return {
            "booking_id": booking.id,
            "total_price": booking.total_price,
            "settled": settled,
            "outstanding": booking.total_price - settled,
            "currency": booking.currency,
        }

    async def list_payments(self, booking_id: UUID) -> list[Payment]:
        async with self.session_factory() as session:
            await self._get_booking_or_raise(session, booking_id)
            return await self.payments.entries(session, booking_id)


def _allocation_details(booking: Booking) -> dict[str, Any]:
    return {
        "room_type_id": str(booking.room_type_id),
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
        "rooms": booking.rooms,
        "total_price": booking.total_price,
    }
