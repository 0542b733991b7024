"""Background worker for marking overdue arrivals as no-shows."""

import logging

from ..services.booking_service import BookingService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class NoShowWorker(BaseWorker):
    """
    Background worker that marks CONFIRMED bookings whose check-in date has
    fully elapsed as NO_SHOW, applying the no-show fee.

    Disabled unless ``auto_no_show_enabled`` is set; many properties prefer
    staff to make the call.
    """

    def __init__(self, booking_service: BookingService, interval_seconds: float = 3600.0, batch_size: int = 100):
        super().__init__(name="NoShow", interval_seconds=interval_seconds)
        self.booking_service = booking_service
        self.batch_size = batch_size

    async def process(self) -> int:
        marked = await self.booking_service.mark_overdue_no_shows(limit=self.batch_size)
        if marked:
            logger.info(
                "Marked overdue bookings as no-show",
                extra={"marked_count": marked, "worker": self.name},
            )
        return marked
