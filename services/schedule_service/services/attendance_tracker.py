"""Attendance tracker: the check-in gate, check-in and check-out.

Check-out is a conditional UPDATE on ``checked_out_at IS NULL``; the auto
check-out reconciler closes the same rows the same way, so whichever writes
first wins and the other finds nothing to close.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from libs.db.types import UTCDateTime
from services.schedule_service.errors import (
    ConcurrencyConflictError,
    NoOpenSessionError,
    NotEligibleError,
    ScheduleNotOpenError,
    storage_operation,
)
from services.schedule_service.models import (
    Attendance,
    AttendanceMethod,
    Booking,
    BookingStatus,
    Schedule,
    ScheduleStatus,
)
from services.schedule_service.services.schedules import get_schedule
from sqlalchemy import ColumnElement, case, func, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CHECK_IN_STATUSES = (ScheduleStatus.SCHEDULED, ScheduleStatus.IN_PROGRESS)
# AUTO is written only by the auto check-out reconciler.
MANUAL_METHODS = (AttendanceMethod.SELF, AttendanceMethod.TRAINER_MANUAL)


def closing_time(at: datetime) -> ColumnElement[datetime]:
    """SQL expression for a check-out time that never precedes check-in."""
    return case(
        (Attendance.checked_in_at > at, Attendance.checked_in_at),
        else_=literal(at, UTCDateTime()),
    )


# ---------------------------------------------------------------------------
# Window rules
# ---------------------------------------------------------------------------


def check_in_window(schedule: Schedule) -> tuple[datetime, datetime]:
    """Check-in runs from a few minutes before start until the end time."""
    opens_before = timedelta(minutes=get_settings().CHECK_IN_OPENS_MINUTES_BEFORE)
    return schedule.start_time - opens_before, schedule.end_time


def can_enable_check_in(schedule: Schedule, now: datetime) -> bool:
    opens_at, closes_at = check_in_window(schedule)
    return schedule.status in CHECK_IN_STATUSES and opens_at <= now <= closes_at


def can_check_in(schedule: Schedule, now: datetime) -> bool:
    return schedule.check_in_enabled and can_enable_check_in(schedule, now)


def _require_manual_method(method: AttendanceMethod) -> None:
    if method not in MANUAL_METHODS:
        raise NotEligibleError(f"'{method.value}' is not a manual attendance method")


# ---------------------------------------------------------------------------
# Check-in gate
# ---------------------------------------------------------------------------


@storage_operation
async def enable_check_in(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    opened_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Schedule:
    now = ensure_utc(now) if now else utc_now()
    try:
        schedule = await get_schedule(db, schedule_id)
        if not can_enable_check_in(schedule, now):
            opens_at, closes_at = check_in_window(schedule)
            raise ScheduleNotOpenError(
                f"Check-in can only be enabled between {opens_at.isoformat()} "
                f"and {closes_at.isoformat()} on an active schedule"
            )

        result = await db.execute(
            update(Schedule)
            .where(Schedule.id == schedule_id, Schedule.status.in_(CHECK_IN_STATUSES))
            .values(
                check_in_enabled=True,
                check_in_opened_at=func.coalesce(
                    Schedule.check_in_opened_at, literal(now, UTCDateTime())
                ),
                check_in_opened_by=func.coalesce(
                    Schedule.check_in_opened_by, opened_by
                ),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError(
                f"Schedule {schedule_id} changed status while enabling check-in"
            )
        schedule = await get_schedule(db, schedule_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Check-in enabled for schedule %s by %s", schedule_id, opened_by)
    return schedule


@storage_operation
async def disable_check_in(db: AsyncSession, schedule_id: uuid.UUID) -> Schedule:
    try:
        await get_schedule(db, schedule_id)
        await db.execute(
            update(Schedule)
            .where(Schedule.id == schedule_id)
            .values(check_in_enabled=False)
            .execution_options(synchronize_session=False)
        )
        schedule = await get_schedule(db, schedule_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Check-in disabled for schedule %s", schedule_id)
    return schedule


# ---------------------------------------------------------------------------
# Check-in / check-out
# ---------------------------------------------------------------------------


async def _confirmed_booking(
    db: AsyncSession, schedule_id: uuid.UUID, member_id: uuid.UUID
) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(
            Booking.schedule_id == schedule_id,
            Booking.member_id == member_id,
            Booking.status == BookingStatus.CONFIRMED,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_attendance(
    db: AsyncSession, schedule_id: uuid.UUID, member_id: uuid.UUID
) -> Optional[Attendance]:
    result = await db.execute(
        select(Attendance)
        .where(
            Attendance.schedule_id == schedule_id,
            Attendance.member_id == member_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _existing_session(attendance: Attendance) -> Attendance:
    if attendance.is_open:
        return attendance
    raise NotEligibleError("Member has already checked out of this schedule")


@storage_operation
async def check_in(
    db: AsyncSession,
    *,
    schedule_id: uuid.UUID,
    member_id: uuid.UUID,
    method: AttendanceMethod = AttendanceMethod.SELF,
    now: Optional[datetime] = None,
) -> Attendance:
    """Open an attendance session for a member holding a confirmed booking.

    Checking in again while the session is open returns that session.
    """
    now = ensure_utc(now) if now else utc_now()
    _require_manual_method(method)
    try:
        schedule = await get_schedule(db, schedule_id)
        booking = await _confirmed_booking(db, schedule_id, member_id)
        if booking is None:
            raise NotEligibleError("A confirmed booking is required to check in")
        if not can_check_in(schedule, now):
            raise NotEligibleError("Check-in is not available at this time")

        existing = await get_attendance(db, schedule_id, member_id)
        if existing is not None:
            attendance = _existing_session(existing)
            await db.commit()
            return attendance

        attendance = Attendance(
            schedule_id=schedule_id,
            member_id=member_id,
            booking_id=booking.id,
            checked_in_at=now,
            check_in_method=method,
        )
        db.add(attendance)
        await db.flush()
        await db.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent check-in for the same member.
        await db.rollback()
        existing = await get_attendance(db, schedule_id, member_id)
        await db.commit()
        if existing is None:
            raise ConcurrencyConflictError() from exc
        return _existing_session(existing)
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Member %s checked in to schedule %s (%s)",
        member_id,
        schedule_id,
        method.value,
    )
    return attendance


@storage_operation
async def check_out(
    db: AsyncSession,
    *,
    schedule_id: uuid.UUID,
    member_id: uuid.UUID,
    method: AttendanceMethod = AttendanceMethod.SELF,
    now: Optional[datetime] = None,
) -> Attendance:
    now = ensure_utc(now) if now else utc_now()
    _require_manual_method(method)
    try:
        result = await db.execute(
            update(Attendance)
            .where(
                Attendance.schedule_id == schedule_id,
                Attendance.member_id == member_id,
                Attendance.checked_out_at.is_(None),
            )
            .values(checked_out_at=closing_time(now), check_out_method=method)
            .returning(Attendance.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            await get_schedule(db, schedule_id)
            raise NoOpenSessionError()
        attendance = await get_attendance(db, schedule_id, member_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Member %s checked out of schedule %s (%s)",
        member_id,
        schedule_id,
        method.value,
    )
    return attendance


@storage_operation
async def check_out_all(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
) -> list[uuid.UUID]:
    """Trainer closes every open session of a schedule. Returns member ids."""
    now = ensure_utc(now) if now else utc_now()
    try:
        await get_schedule(db, schedule_id)
        result = await db.execute(
            update(Attendance)
            .where(
                Attendance.schedule_id == schedule_id,
                Attendance.checked_out_at.is_(None),
            )
            .values(
                checked_out_at=closing_time(now),
                check_out_method=AttendanceMethod.TRAINER_MANUAL,
            )
            .returning(Attendance.member_id)
            .execution_options(synchronize_session=False)
        )
        member_ids = list(result.scalars().all())
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Trainer checked out %d member(s) from schedule %s", len(member_ids), schedule_id
    )
    return member_ids


# ---------------------------------------------------------------------------
# Status view
# ---------------------------------------------------------------------------


@dataclass
class CheckInStatus:
    schedule: Schedule
    now: datetime
    window_opens_at: datetime
    window_closes_at: datetime
    can_enable_check_in: bool
    can_check_in: bool
    total_checked_in: int
    currently_present: int
    booking: Optional[Booking] = None
    attendance: Optional[Attendance] = None
    attendances: list[Attendance] = field(default_factory=list)


@storage_operation
async def get_check_in_status(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    member_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> CheckInStatus:
    now = ensure_utc(now) if now else utc_now()
    schedule = await get_schedule(db, schedule_id)
    opens_at, closes_at = check_in_window(schedule)

    result = await db.execute(
        select(Attendance)
        .where(Attendance.schedule_id == schedule_id)
        .order_by(Attendance.checked_in_at.asc())
        .execution_options(populate_existing=True)
    )
    attendances = list(result.scalars().all())

    status = CheckInStatus(
        schedule=schedule,
        now=now,
        window_opens_at=opens_at,
        window_closes_at=closes_at,
        can_enable_check_in=can_enable_check_in(schedule, now),
        can_check_in=can_check_in(schedule, now),
        total_checked_in=len(attendances),
        currently_present=sum(1 for a in attendances if a.is_open),
        attendances=attendances,
    )
    if member_id is not None:
        result = await db.execute(
            select(Booking)
            .where(
                Booking.schedule_id == schedule_id,
                Booking.member_id == member_id,
                Booking.status != BookingStatus.CANCELLED,
            )
            .execution_options(populate_existing=True)
        )
        status.booking = result.scalar_one_or_none()
        status.attendance = next(
            (a for a in attendances if a.member_id == member_id), None
        )
    return status
