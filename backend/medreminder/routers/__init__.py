"""API routers."""
from .notifications import router as notifications_router, ws_router as notifications_ws_router
from .confirmations import router as confirmations_router
from .push import router as push_router
from .pharmacy import router as pharmacy_router

__all__ = [
    "notifications_router",
    "notifications_ws_router",
    "confirmations_router",
    "push_router",
    "pharmacy_router",
]
