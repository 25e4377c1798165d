"""Member-facing booking endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.schedule_service.events import EventPublisher, get_event_publisher
from services.schedule_service.routers._helpers import with_request_timeout
from services.schedule_service.schemas import (
    BookingCancelRequest,
    BookingCancelResponse,
    BookingCreateRequest,
    BookingResponse,
)
from services.schedule_service.services.booking_service import (
    cancel_booking,
    create_booking,
    get_booking,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    payload: BookingCreateRequest,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Book a seat, or join the waitlist when the class is full."""
    booking = await with_request_timeout(
        create_booking(
            db,
            schedule_id=payload.schedule_id,
            member_id=payload.member_id,
            notes=payload.notes,
            allow_waitlist=payload.allow_waitlist,
            publisher=publisher,
        )
    )
    return booking


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: uuid.UUID,
    payload: Optional[BookingCancelRequest] = None,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Cancel a booking. Cancelling twice is a no-op."""
    booking, promoted = await with_request_timeout(
        cancel_booking(
            db,
            booking_id=booking_id,
            reason=payload.reason if payload else None,
            publisher=publisher,
        )
    )
    return BookingCancelResponse(
        booking=BookingResponse.model_validate(booking),
        promoted=BookingResponse.model_validate(promoted) if promoted else None,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: uuid.UUID,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await get_booking(db, booking_id)
