"""Booking request/response schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.schedule_service.models.enums import BookingStatus


class BookingCreateRequest(BaseModel):
    schedule_id: uuid.UUID
    member_id: uuid.UUID
    notes: Optional[str] = Field(None, max_length=1000)
    allow_waitlist: bool = True


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingResponse(BaseModel):
    id: uuid.UUID
    schedule_id: uuid.UUID
    member_id: uuid.UUID
    status: BookingStatus
    is_waitlist: bool
    waitlist_position: Optional[int] = None
    notes: Optional[str] = None
    booked_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BookingCancelResponse(BaseModel):
    booking: BookingResponse
    promoted: Optional[BookingResponse] = None
