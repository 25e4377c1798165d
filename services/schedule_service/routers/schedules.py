"""Schedule views, check-in and check-out endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.schedule_service.routers._helpers import with_request_timeout
from services.schedule_service.schemas import (
    AttendanceResponse,
    BookingResponse,
    CheckInGateResponse,
    CheckInRequest,
    CheckInStatusResponse,
    CheckOutAllResponse,
    CheckOutRequest,
    ScheduleResponse,
    WaitlistEntryResponse,
    WaitlistResponse,
)
from services.schedule_service.services import attendance_tracker
from services.schedule_service.services.schedules import get_schedule
from services.schedule_service.services.waitlist import list_waitlist
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/schedules", tags=["schedules"])


def _gate_response(schedule) -> CheckInGateResponse:
    return CheckInGateResponse(
        schedule_id=schedule.id,
        check_in_enabled=schedule.check_in_enabled,
        check_in_opened_at=schedule.check_in_opened_at,
        check_in_opened_by=schedule.check_in_opened_by,
    )


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule_endpoint(
    schedule_id: uuid.UUID,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await get_schedule(db, schedule_id)


@router.get("/{schedule_id}/waitlist", response_model=WaitlistResponse)
async def get_waitlist_endpoint(
    schedule_id: uuid.UUID,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Active waitlist in promotion order."""
    schedule = await get_schedule(db, schedule_id)
    entries = await list_waitlist(db, schedule_id)
    return WaitlistResponse(
        schedule_id=schedule.id,
        waitlist_count=schedule.waitlist_count,
        entries=[
            WaitlistEntryResponse(
                booking_id=booking.id,
                member_id=booking.member_id,
                status=booking.status,
                waitlist_position=booking.waitlist_position,
                booked_at=booking.booked_at,
            )
            for booking in entries
        ],
    )


# ---------------------------------------------------------------------------
# Check-in / check-out
# ---------------------------------------------------------------------------


@router.post("/{schedule_id}/check-in", response_model=AttendanceResponse)
async def check_in_endpoint(
    schedule_id: uuid.UUID,
    payload: CheckInRequest,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await with_request_timeout(
        attendance_tracker.check_in(
            db,
            schedule_id=schedule_id,
            member_id=payload.member_id,
            method=payload.method,
        )
    )


@router.post("/{schedule_id}/check-out", response_model=AttendanceResponse)
async def check_out_endpoint(
    schedule_id: uuid.UUID,
    payload: CheckOutRequest,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await with_request_timeout(
        attendance_tracker.check_out(
            db,
            schedule_id=schedule_id,
            member_id=payload.member_id,
            method=payload.method,
        )
    )


@router.get("/{schedule_id}/check-in-status", response_model=CheckInStatusResponse)
async def check_in_status_endpoint(
    schedule_id: uuid.UUID,
    member_id: Optional[uuid.UUID] = Query(None),
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    view = await attendance_tracker.get_check_in_status(
        db, schedule_id, member_id=member_id
    )
    schedule = view.schedule
    return CheckInStatusResponse(
        schedule_id=schedule.id,
        check_in_enabled=schedule.check_in_enabled,
        check_in_opened_at=schedule.check_in_opened_at,
        check_in_opened_by=schedule.check_in_opened_by,
        auto_checkout_completed=schedule.auto_checkout_completed,
        auto_checkout_at=schedule.auto_checkout_at,
        can_enable_check_in=view.can_enable_check_in,
        can_check_in=view.can_check_in,
        current_time=view.now,
        window_opens_at=view.window_opens_at,
        window_closes_at=view.window_closes_at,
        total_checked_in=view.total_checked_in,
        currently_present=view.currently_present,
        booking=BookingResponse.model_validate(view.booking) if view.booking else None,
        attendance=(
            AttendanceResponse.model_validate(view.attendance)
            if view.attendance
            else None
        ),
    )


# ---------------------------------------------------------------------------
# Trainer controls
# ---------------------------------------------------------------------------


@router.post("/{schedule_id}/check-in/enable", response_model=CheckInGateResponse)
async def enable_check_in_endpoint(
    schedule_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Open check-in (from shortly before start until the class ends)."""
    schedule = await attendance_tracker.enable_check_in(
        db, schedule_id, opened_by=current_user.user_id
    )
    return _gate_response(schedule)


@router.post("/{schedule_id}/check-in/disable", response_model=CheckInGateResponse)
async def disable_check_in_endpoint(
    schedule_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    schedule = await attendance_tracker.disable_check_in(db, schedule_id)
    return _gate_response(schedule)


@router.post("/{schedule_id}/check-out-all", response_model=CheckOutAllResponse)
async def check_out_all_endpoint(
    schedule_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Check out everyone still present."""
    member_ids = await attendance_tracker.check_out_all(db, schedule_id)
    return CheckOutAllResponse(
        schedule_id=schedule_id,
        checked_out_count=len(member_ids),
        member_ids=member_ids,
    )
