"""FastAPI routers package."""

from .booking import router as booking_router
from .catalog import router as catalog_router
from .health import router as health_router
from .inventory import router as inventory_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .policy import router as policy_router

__all__ = [
    "booking_router",
    "catalog_router",
    "health_router",
    "inventory_router",
    "metrics_router",
    "payment_router",
    "policy_router",
]
