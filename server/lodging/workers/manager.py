"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, settings as default_settings
from ..core.database import async_session_factory
from ..core.dependencies import lock_registry
from ..services.booking_service import BookingService
from .base import BaseWorker
from .hold_expiry_worker import HoldExpiryWorker
from .no_show_worker import NoShowWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        settings: Settings = default_settings,
        booking_service: Optional[BookingService] = None,
    ):
        self.settings = settings
        self.booking_service = booking_service or BookingService(
            session_factory, settings=settings, locks=lock_registry
        )
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()

    def _setup_workers(self) -> None:
        """Initialize all workers."""
        self.workers["hold_expiry"] = HoldExpiryWorker(
            self.booking_service.holds,
            interval_seconds=self.settings.hold_sweep_interval_seconds,
        )

        if self.settings.auto_no_show_enabled:
            self.workers["no_show"] = NoShowWorker(
                self.booking_service,
                interval_seconds=self.settings.no_show_sweep_interval_seconds,
            )

        logger.info("Initialized workers", extra={"workers": list(self.workers)})

    async def start_all(self) -> None:
        """Start all workers."""
        for name, worker in self.workers.items():
            await worker.start()
            logger.info("Started worker", extra={"worker": name})

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        names = [name for name, worker in self.workers.items() if worker.running]
        results = await asyncio.gather(
            *(self.workers[name].stop() for name in names), return_exceptions=True
        )

        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error("Error stopping worker", exc_info=result, extra={"worker": name})
            else:
                logger.info("Stopped worker", extra={"worker": name})

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Running status of every worker."""
        return {name: worker.running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
