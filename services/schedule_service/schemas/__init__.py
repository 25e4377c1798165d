"""Schedule Service schemas package.

Re-exports all schemas so routers import from one place.
When adding a new schema, add its import and __all__ entry.
"""

from services.schedule_service.schemas.admin import (  # noqa: F401
    AutoCheckoutStatsResponse,
    AutoCheckoutSweepResponse,
    ForceStatusRequest,
    ForceStatusResponse,
    PendingSchedulesResponse,
    PromoteWaitlistResponse,
    ScheduleAutoCheckoutResponse,
    StatusSweepResponse,
)
from services.schedule_service.schemas.attendance import (  # noqa: F401
    AttendanceResponse,
    CheckInGateResponse,
    CheckInRequest,
    CheckInStatusResponse,
    CheckOutAllResponse,
    CheckOutRequest,
)
from services.schedule_service.schemas.booking import (  # noqa: F401
    BookingCancelRequest,
    BookingCancelResponse,
    BookingCreateRequest,
    BookingResponse,
)
from services.schedule_service.schemas.schedule import (  # noqa: F401
    ScheduleResponse,
    WaitlistEntryResponse,
    WaitlistResponse,
)

__all__ = [
    "AttendanceResponse",
    "AutoCheckoutStatsResponse",
    "AutoCheckoutSweepResponse",
    "BookingCancelRequest",
    "BookingCancelResponse",
    "BookingCreateRequest",
    "BookingResponse",
    "CheckInGateResponse",
    "CheckInRequest",
    "CheckInStatusResponse",
    "CheckOutAllResponse",
    "CheckOutRequest",
    "ForceStatusRequest",
    "ForceStatusResponse",
    "PendingSchedulesResponse",
    "PromoteWaitlistResponse",
    "ScheduleAutoCheckoutResponse",
    "ScheduleResponse",
    "StatusSweepResponse",
    "WaitlistEntryResponse",
    "WaitlistResponse",
]
