"""
External collaborators of the booking engine.

The engine records intent and outcome but delegates money movement, channel
synchronisation and guest messaging. The default implementations only log,
so the engine runs standalone; deployments inject real adapters.
"""

import logging
from typing import Optional, Protocol

from ..models.booking import Booking
from ..models.payment import Payment

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    """Moves money for card and gateway payments."""

    async def issue_charge(self, booking: Booking, amount: int, currency: str) -> Optional[str]:
        """Request a charge; returns the gateway transaction id if one was created."""
        ...

    async def issue_refund(self, payment: Payment, amount: int) -> Optional[str]:
        """Request a refund of part of ``payment``; returns the gateway refund id."""
        ...


class ChannelManager(Protocol):
    """Keeps OTA channels in sync with bookings they sent us."""

    async def push_booking(self, booking: Booking, event: str) -> None:
        ...


class NotificationDispatcher(Protocol):
    """Hands guest and staff notifications to the messaging layer."""

    async def dispatch(self, booking: Booking, event: str, payload: Optional[dict] = None) -> None:
        ...


class LoggingPaymentGateway:
    async def issue_charge(self, booking: Booking, amount: int, currency: str) -> Optional[str]:
        logger.info(
            "Gateway charge requested",
            extra={"booking_id": str(booking.id), "amount": amount, "currency": currency},
        )
        return None

    async def issue_refund(self, payment: Payment, amount: int) -> Optional[str]:
        logger.info(
            "Gateway refund requested",
            extra={
                "booking_id": str(payment.booking_id),
                "payment_id": payment.id,
                "external_txn_id": payment.external_txn_id,
                "amount": amount,
            },
        )
        return None


class LoggingChannelManager:
    async def push_booking(self, booking: Booking, event: str) -> None:
        logger.info(
            "Channel update queued",
            extra={
                "booking_id": str(booking.id),
                "source": booking.source,
                "external_reservation_id": booking.external_reservation_id,
                "event": event,
            },
        )


class LoggingNotificationDispatcher:
    async def dispatch(self, booking: Booking, event: str, payload: Optional[dict] = None) -> None:
        logger.info(
            "Notification dispatched",
            extra={"booking_id": str(booking.id), "event": event, "status": booking.status},
        )
