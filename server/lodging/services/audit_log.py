"""Append-only booking audit trail."""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..models.audit import AuditLogEntry


class AuditLog:
    """Writes audit entries inside the caller's transaction; never updates or deletes."""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    async def append(
        self,
        session: AsyncSession,
        booking_id: UUID,
        action: str,
        actor: str,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            booking_id=booking_id,
            action=action,
            actor=actor,
            details=details or {},
            created_at=self.clock(),
        )
        session.add(entry)
        await session.flush()
        return entry

    async def list_entries(self, session: AsyncSession, booking_id: UUID) -> list[AuditLogEntry]:
        """Entries for a booking in insertion order."""
        stmt = (
            select(AuditLogEntry)
            .where(AuditLogEntry.booking_id == booking_id)
            .order_by(AuditLogEntry.id)
        )
        return list((await session.execute(stmt)).scalars())
