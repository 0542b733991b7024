"""Liveness ping with background worker state."""

import logging

from fastapi import APIRouter

from ..core.clock import utc_now
from ..core.observability import SERVICE_VERSION
from ..schemas.health import HealthResponse, HealthStatus, SweepStatus
from ..workers.manager import worker_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


def _sweep_status() -> SweepStatus:
    worker = worker_manager.get_worker("hold_expiry")
    last = worker.last_result
    return SweepStatus(
        running=worker.running,
        iterations=worker.iterations,
        last_expired=last.expired if last else None,
        last_failed=last.failed if last else None,
    )


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> HealthResponse:
    """
    Liveness ping.

    Always answers healthy while the process serves requests; the sweep block
    lets operators see whether holds are actually being expired.
    """
    sweep = _sweep_status()
    if not sweep.running:
        logger.debug("Ping while hold sweep is not running", extra={"iterations": sweep.iterations})

    return HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=utc_now(),
        version=SERVICE_VERSION,
        workers=worker_manager.get_worker_status(),
        hold_sweep=sweep,
    )
