"""Schedule service routers."""

from services.schedule_service.routers.admin import router as admin_router
from services.schedule_service.routers.bookings import router as bookings_router
from services.schedule_service.routers.schedules import router as schedules_router

__all__ = [
    "admin_router",
    "bookings_router",
    "schedules_router",
]
