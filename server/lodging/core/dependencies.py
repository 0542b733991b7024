"""FastAPI dependencies for database sessions, the acting user and services."""

from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .clock import Clock, utc_now
from .config import settings
from .database import async_session_factory
from .exceptions import ValidationError
from .locking import KeyedLockRegistry
from .middleware import ACTOR_HEADER
from ..services.booking_service import BookingService
from ..services.buffer_rules import BufferRuleService
from ..services.cancellation_policy import CancellationPolicyService
from ..services.catalog_service import CatalogService

DEFAULT_ACTOR = "system"

# Shared by every request and the background workers of this process
lock_registry = KeyedLockRegistry(timeout_seconds=settings.lock_timeout_seconds)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory dependency; overridden in tests to point at a scratch database."""
    return async_session_factory


def get_clock() -> Clock:
    return utc_now


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_actor(x_actor: Optional[str] = Header(None, alias=ACTOR_HEADER)) -> str:
    """
    Acting user for audit entries, taken from the X-Actor header.

    Raises:
        ValidationError: If the header is present but blank or too long
    """
    if x_actor is None:
        return DEFAULT_ACTOR
    actor = x_actor.strip()
    if not actor or len(actor) > 128:
        raise ValidationError(
            detail=f"{ACTOR_HEADER} must be between 1 and 128 characters",
            errors={ACTOR_HEADER: x_actor},
        )
    return actor


def get_booking_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> BookingService:
    return BookingService(session_factory, settings=settings, clock=clock, locks=lock_registry)


def get_catalog_service(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)) -> CatalogService:
    return CatalogService(db, clock=clock)


def get_buffer_rule_service(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)) -> BufferRuleService:
    return BufferRuleService(db, clock=clock)


def get_policy_service(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)) -> CancellationPolicyService:
    return CancellationPolicyService(db, clock=clock)


# Define dependencies to avoid B008 linting errors
DatabaseSession = Depends(get_db)
Actor = Depends(get_actor)
BookingServiceDependency = Depends(get_booking_service)
CatalogServiceDependency = Depends(get_catalog_service)
PolicyServiceDependency = Depends(get_policy_service)
BufferRuleServiceDependency = Depends(get_buffer_rule_service)
