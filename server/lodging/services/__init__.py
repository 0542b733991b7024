"""Service layer package."""

from .audit_log import AuditLog
from .booking_service import BookingService
from .buffer_rules import BufferRuleService
from .cancellation_policy import CancellationPolicyService, compute_fee
from .catalog_service import CatalogService
from .hold_manager import HoldManager, SweepResult
from .inventory_ledger import InventoryLedger
from .payment_ledger import PaymentLedger

__all__ = [
    "AuditLog",
    "BookingService",
    "BufferRuleService",
    "CancellationPolicyService",
    "CatalogService",
    "HoldManager",
    "InventoryLedger",
    "PaymentLedger",
    "SweepResult",
    "compute_fee",
]
