from .reservations import router as reservations_router
from .payments import router as payments_router
from .credits import router as credits_router
from .tariffs import router as tariffs_router
from .notifications import router as notifications_router
from .cron import router as cron_router

__all__ = [
    "reservations_router", "payments_router", "credits_router", "tariffs_router",
    "notifications_router", "cron_router",
]
