"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.dependencies import ACTOR_HEADER
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import (
    booking_router,
    catalog_router,
    health_router,
    inventory_router,
    metrics_router,
    payment_router,
    policy_router,
)
from .workers.manager import worker_manager

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Sets up observability and the schema, then runs the hold sweep (and the
    optional no-show worker) for the lifetime of the process.
    """
    logger.info("Starting booking engine", extra={"environment": settings.environment})

    setup_tracing(SERVICE_NAME)
    setup_metrics(SERVICE_NAME)
    instrument_sqlalchemy(engine)

    if not settings.is_production:
        # Production schemas are managed by Alembic
        await init_db()
        logger.info("Database schema ensured")

    await worker_manager.start_all()
    logger.info("Application startup complete")

    try:
        yield
    finally:
        logger.info("Shutting down booking engine")
        await worker_manager.stop_all()
        await close_db()
        logger.info("Application shutdown complete")


def create_app(with_lifespan: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        with_lifespan: Run startup/shutdown (observability, schema, workers);
            disabled by tests that manage their own database and sweep.
    """
    app = FastAPI(
        title="Lodging Booking Engine",
        description=(
            "RPC-over-HTTP API for room-night holds, booking lifecycle transitions, "
            "cancellation fees and payment reconciliation"
        ),
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan if with_lifespan else None,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate", "Retry-After"],
    )

    setup_middleware(app, enable_logging=True)

    if with_lifespan:
        instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        response_model=dict,
    )
    async def health_check():
        """Liveness: the process is up and serving requests."""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Readiness Check",
        response_model=dict,
    )
    async def readiness_check():
        """Readiness: the database answers and the hold sweep is running."""
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            database = "ok"
        except Exception:
            logger.exception("Readiness database check failed")
            database = "unavailable"

        workers = worker_manager.get_worker_status()
        return {
            "status": "ready" if database == "ok" else "degraded",
            "service": SERVICE_NAME,
            "checks": {"database": database, "workers": workers},
        }

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        response_model=dict,
    )
    async def service_info():
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "description": "Booking lifecycle engine for multi-property lodging inventory",
            "environment": settings.environment,
            "hold_ttl_seconds": settings.hold_ttl_seconds,
            "pending_hold_ttl_seconds": settings.pending_hold_ttl_seconds,
            "check_in_hour": settings.check_in_hour,
            "actor_header": ACTOR_HEADER,
            "features": {
                "auto_no_show": settings.auto_no_show_enabled,
                "tracing": bool(settings.otlp_endpoint),
                "problem_details": True,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
            },
        }

    app.include_router(health_router)
    app.include_router(catalog_router)
    app.include_router(policy_router)
    app.include_router(inventory_router)
    app.include_router(booking_router)
    app.include_router(payment_router)
    app.include_router(metrics_router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lodging.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
