"""Database models for the lodging booking engine."""

from .audit import AuditLogEntry
from .booking import TERMINAL_STATUSES, Booking, BookingSource, BookingStatus
from .buffer import BufferRule
from .catalog import Property, RatePlan, RoomType
from .hold import HoldRecord, HoldStatus
from .inventory import AllocationSource, InventoryDay
from .payment import SETTLED_STATUSES, Payment, PaymentMethod, PaymentStatus
from .policy import CancellationPolicy

__all__ = [
    "AllocationSource",
    "AuditLogEntry",
    "Booking",
    "BookingSource",
    "BookingStatus",
    "BufferRule",
    "CancellationPolicy",
    "HoldRecord",
    "HoldStatus",
    "InventoryDay",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Property",
    "RatePlan",
    "RoomType",
    "SETTLED_STATUSES",
    "TERMINAL_STATUSES",
]
