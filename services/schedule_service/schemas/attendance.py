"""Check-in / check-out schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator
from services.schedule_service.models.enums import AttendanceMethod
from services.schedule_service.schemas.booking import BookingResponse


class _ManualAttendanceRequest(BaseModel):
    member_id: uuid.UUID
    method: AttendanceMethod = AttendanceMethod.SELF

    @field_validator("method")
    @classmethod
    def reject_auto(cls, v: AttendanceMethod) -> AttendanceMethod:
        if v == AttendanceMethod.AUTO:
            raise ValueError("auto is reserved for automatic check-out")
        return v


class CheckInRequest(_ManualAttendanceRequest):
    pass


class CheckOutRequest(_ManualAttendanceRequest):
    pass


class AttendanceResponse(BaseModel):
    id: uuid.UUID
    schedule_id: uuid.UUID
    member_id: uuid.UUID
    booking_id: Optional[uuid.UUID] = None
    checked_in_at: datetime
    checked_out_at: Optional[datetime] = None
    check_in_method: AttendanceMethod
    check_out_method: Optional[AttendanceMethod] = None
    is_auto_checkout: bool

    model_config = ConfigDict(from_attributes=True)


class CheckInGateResponse(BaseModel):
    schedule_id: uuid.UUID
    check_in_enabled: bool
    check_in_opened_at: Optional[datetime] = None
    check_in_opened_by: Optional[str] = None


class CheckOutAllResponse(BaseModel):
    schedule_id: uuid.UUID
    checked_out_count: int
    member_ids: list[uuid.UUID]


class CheckInStatusResponse(BaseModel):
    schedule_id: uuid.UUID
    check_in_enabled: bool
    check_in_opened_at: Optional[datetime] = None
    check_in_opened_by: Optional[str] = None
    auto_checkout_completed: bool
    auto_checkout_at: Optional[datetime] = None

    can_enable_check_in: bool
    can_check_in: bool
    current_time: datetime
    window_opens_at: datetime
    window_closes_at: datetime

    total_checked_in: int
    currently_present: int
    booking: Optional[BookingResponse] = None
    attendance: Optional[AttendanceResponse] = None
