"""Schedule and waitlist response schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from services.schedule_service.models.enums import BookingStatus, ScheduleStatus


class ScheduleResponse(BaseModel):
    id: uuid.UUID
    class_id: uuid.UUID
    room_id: uuid.UUID
    trainer_id: Optional[uuid.UUID] = None
    title: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: ScheduleStatus
    status_changed_at: Optional[datetime] = None
    max_capacity: int
    current_bookings: int
    waitlist_count: int
    check_in_enabled: bool
    check_in_opened_at: Optional[datetime] = None
    check_in_opened_by: Optional[str] = None
    auto_checkout_completed: bool
    auto_checkout_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WaitlistEntryResponse(BaseModel):
    booking_id: uuid.UUID
    member_id: uuid.UUID
    status: BookingStatus
    waitlist_position: int
    booked_at: datetime


class WaitlistResponse(BaseModel):
    schedule_id: uuid.UUID
    waitlist_count: int
    entries: list[WaitlistEntryResponse]
