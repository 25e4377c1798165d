"""Schedule Service models package."""

from services.schedule_service.models.core import Attendance, Booking, Schedule
from services.schedule_service.models.enums import (
    AttendanceMethod,
    BookingStatus,
    ScheduleStatus,
)

__all__ = [
    "Attendance",
    "AttendanceMethod",
    "Booking",
    "BookingStatus",
    "Schedule",
    "ScheduleStatus",
]
