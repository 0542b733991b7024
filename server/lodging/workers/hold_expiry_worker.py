"""Background worker for expiring holds."""

import logging

from ..services.hold_manager import HoldManager, SweepResult
from .base import BaseWorker

logger = logging.getLogger(__name__)


class HoldExpiryWorker(BaseWorker):
    """
    Background worker that expires holds past their TTL.

    Each iteration is one ``HoldManager.sweep``: expired holds give their
    room-nights back and bookings still in HOLD are cancelled.
    """

    def __init__(self, hold_manager: HoldManager, interval_seconds: float = 60.0):
        super().__init__(name="HoldExpiry", interval_seconds=interval_seconds)
        self.hold_manager = hold_manager

    async def process(self) -> SweepResult:
        result = await self.hold_manager.sweep()

        if result.expired or result.failed:
            logger.info(
                "Expired holds swept",
                extra={
                    "expired_count": result.expired,
                    "failed_count": result.failed,
                    "worker": self.name,
                }
            )
        return result
