"""Fixed-interval loop shared by the background workers."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from ..core.clock import utc_now

logger = logging.getLogger(__name__)

# Upper bound on the pause after repeated failures, in intervals
MAX_FAILURE_BACKOFF = 8


class BaseWorker(ABC):
    """
    A periodic task with an explicit ``run_once`` seam.

    The loop owns scheduling only. ``process`` must be idempotent and safe to
    overlap with another invocation, because operators and tests may call
    ``run_once`` while the loop is also running.
    """

    def __init__(self, name: str, interval_seconds: float = 60.0):
        self.name = name
        self.interval_seconds = interval_seconds
        self.iterations = 0
        self.consecutive_failures = 0
        self.last_result: Any = None
        self.last_run_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @abstractmethod
    async def process(self) -> Any:
        """One pass of the worker's job."""

    async def run_once(self) -> Any:
        self.last_run_at = utc_now()
        self.last_result = await self.process()
        self.iterations += 1
        return self.last_result

    async def start(self) -> None:
        if self.running:
            logger.warning("Worker already scheduled", extra={"worker": self.name})
            return

        self._task = asyncio.create_task(self._loop(), name=f"worker:{self.name}")
        logger.info(
            "Worker scheduled",
            extra={"worker": self.name, "interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        if not self.running:
            logger.warning("Worker not scheduled", extra={"worker": self.name})
            return

        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("Worker task cancelled", extra={"worker": self.name})

        logger.info("Worker stopped", extra={"worker": self.name, "iterations": self.iterations})

    def _next_delay(self, elapsed: float) -> float:
        if self.consecutive_failures:
            factor = min(2 ** (self.consecutive_failures - 1), MAX_FAILURE_BACKOFF)
            return self.interval_seconds * factor
        return max(0.0, self.interval_seconds - elapsed)

    async def _loop(self) -> None:
        while True:
            started = utc_now()
            try:
                await self.run_once()
                self.consecutive_failures = 0
            except asyncio.CancelledError:
                raise
            except Exception:
                self.consecutive_failures += 1
                logger.error(
                    "Worker pass failed",
                    exc_info=True,
                    extra={"worker": self.name, "consecutive_failures": self.consecutive_failures},
                )

            elapsed = (utc_now() - started).total_seconds()
            logger.debug("Worker pass finished", extra={"worker": self.name, "duration_seconds": elapsed})
            await asyncio.sleep(self._next_delay(elapsed))
