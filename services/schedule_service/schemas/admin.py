"""Administrative tooling schemas.

Every operation reports ``success`` and ``rows_affected`` so operators can
tell a no-op apart from a lost race.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from services.schedule_service.models.enums import ScheduleStatus
from services.schedule_service.schemas.booking import BookingResponse
from services.schedule_service.schemas.schedule import ScheduleResponse


class StatusSweepResponse(BaseModel):
    success: bool = True
    rows_affected: int
    started: list[uuid.UUID]
    completed: list[uuid.UUID]


class AutoCheckoutSweepResponse(BaseModel):
    success: bool
    rows_affected: int
    candidates: int
    claimed: list[uuid.UUID]
    skipped: list[uuid.UUID]
    failed: list[uuid.UUID]
    degraded: list[uuid.UUID]
    members_checked_out: int
    reminders_sent: int


class PendingSchedulesResponse(BaseModel):
    success: bool = True
    rows_affected: int = 0
    total: int
    to_start: list[ScheduleResponse]
    to_complete: list[ScheduleResponse]
    to_auto_checkout: list[ScheduleResponse]


class ForceStatusRequest(BaseModel):
    status: ScheduleStatus
    reason: Optional[str] = Field(None, max_length=500)


class ForceStatusResponse(BaseModel):
    success: bool
    rows_affected: int
    previous_status: ScheduleStatus
    schedule: ScheduleResponse


class ScheduleAutoCheckoutResponse(BaseModel):
    success: bool
    rows_affected: int
    schedule_id: uuid.UUID
    members_checked_out: int
    degraded: bool


class PromoteWaitlistResponse(BaseModel):
    success: bool
    rows_affected: int
    promoted: Optional[BookingResponse] = None


class AutoCheckoutStatsResponse(BaseModel):
    success: bool = True
    rows_affected: int = 0
    since: datetime
    generated_at: datetime
    schedules_auto_checked_out: int
    members_auto_checked_out: int
