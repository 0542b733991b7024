"""Background workers for the lodging booking engine."""

from .hold_expiry_worker import HoldExpiryWorker
from .no_show_worker import NoShowWorker

__all__ = ["HoldExpiryWorker", "NoShowWorker"]
