"""Unit tests for the check-in gate, check-in and check-out."""

import uuid
from datetime import timedelta

import pytest
from libs.common.datetime_utils import utc_now
from services.schedule_service.errors import (
    NoOpenSessionError,
    NotEligibleError,
    ScheduleNotFoundError,
    ScheduleNotOpenError,
)
from services.schedule_service.models import (
    AttendanceMethod,
    BookingStatus,
    ScheduleStatus,
)
from services.schedule_service.services.attendance_tracker import (
    check_in,
    check_out,
    check_out_all,
    disable_check_in,
    enable_check_in,
    get_attendance,
    get_check_in_status,
)
from services.schedule_service.services.auto_checkout import close_open_attendance
from tests.factories import AttendanceFactory, BookingFactory, ScheduleFactory, insert


async def _class_about_to_start(db, now, **overrides):
    """Schedule starting in five minutes with one confirmed member."""
    fields = {"start_time": now + timedelta(minutes=5), "current_bookings": 1}
    fields.update(overrides)
    schedule = await insert(db, ScheduleFactory.create(**fields))
    booking = await insert(db, BookingFactory.create(schedule_id=schedule.id))
    return schedule, booking


# ---------------------------------------------------------------------------
# Check-in gate
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_enable_check_in_inside_window(db_session):
    now = utc_now()
    schedule, _ = await _class_about_to_start(db_session, now)

    enabled = await enable_check_in(
        db_session, schedule.id, opened_by="trainer-1", now=now
    )

    assert enabled.check_in_enabled is True
    assert enabled.check_in_opened_at == now
    assert enabled.check_in_opened_by == "trainer-1"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_enable_check_in_keeps_first_opener(db_session):
    now = utc_now()
    schedule, _ = await _class_about_to_start(db_session, now)
    await enable_check_in(db_session, schedule.id, opened_by="trainer-1", now=now)

    again = await enable_check_in(
        db_session,
        schedule.id,
        opened_by="trainer-2",
        now=now + timedelta(minutes=1),
    )

    assert again.check_in_opened_at == now
    assert again.check_in_opened_by == "trainer-1"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_enable_check_in_too_early(db_session):
    now = utc_now()
    schedule, _ = await _class_about_to_start(
        db_session, now, start_time=now + timedelta(hours=3)
    )

    with pytest.raises(ScheduleNotOpenError):
        await enable_check_in(db_session, schedule.id, now=now)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_enable_check_in_on_cancelled_schedule(db_session):
    now = utc_now()
    schedule, _ = await _class_about_to_start(
        db_session, now, status=ScheduleStatus.CANCELLED
    )

    with pytest.raises(ScheduleNotOpenError):
        await enable_check_in(db_session, schedule.id, now=now)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_disable_check_in_blocks_new_check_ins(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    await enable_check_in(db_session, schedule.id, now=now)

    disabled = await disable_check_in(db_session, schedule.id)

    assert disabled.check_in_enabled is False
    with pytest.raises(NotEligibleError):
        await check_in(
            db_session, schedule_id=schedule.id, member_id=booking.member_id, now=now
        )


# ---------------------------------------------------------------------------
# Check-in
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_in_opens_session(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    await enable_check_in(db_session, schedule.id, now=now)

    attendance = await check_in(
        db_session, schedule_id=schedule.id, member_id=booking.member_id, now=now
    )

    assert attendance.is_open
    assert attendance.booking_id == booking.id
    assert attendance.checked_in_at == now
    assert attendance.check_in_method == AttendanceMethod.SELF


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_in_twice_returns_same_session(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    await enable_check_in(db_session, schedule.id, now=now)
    first = await check_in(
        db_session, schedule_id=schedule.id, member_id=booking.member_id, now=now
    )

    second = await check_in(
        db_session,
        schedule_id=schedule.id,
        member_id=booking.member_id,
        now=now + timedelta(minutes=1),
    )

    assert second.id == first.id
    assert second.checked_in_at == now


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_in_requires_confirmed_booking(db_session):
    now = utc_now()
    schedule, _ = await _class_about_to_start(db_session, now)
    waitlisted = await insert(
        db_session,
        BookingFactory.create(
            schedule_id=schedule.id,
            status=BookingStatus.WAITLIST,
            is_waitlist=True,
            waitlist_position=1,
            confirmed_at=None,
        ),
    )
    schedule_id, waitlisted_member_id = schedule.id, waitlisted.member_id
    await enable_check_in(db_session, schedule_id, now=now)

    with pytest.raises(NotEligibleError):
        await check_in(
            db_session, schedule_id=schedule_id, member_id=uuid.uuid4(), now=now
        )
    with pytest.raises(NotEligibleError):
        await check_in(
            db_session,
            schedule_id=schedule_id,
            member_id=waitlisted_member_id,
            now=now,
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_in_before_gate_opens(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)

    with pytest.raises(NotEligibleError):
        await check_in(
            db_session, schedule_id=schedule.id, member_id=booking.member_id, now=now
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_in_after_end_rejected(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    await enable_check_in(db_session, schedule.id, now=now)

    with pytest.raises(NotEligibleError):
        await check_in(
            db_session,
            schedule_id=schedule.id,
            member_id=booking.member_id,
            now=schedule.end_time + timedelta(seconds=1),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_in_unknown_schedule(db_session):
    with pytest.raises(ScheduleNotFoundError):
        await check_in(db_session, schedule_id=uuid.uuid4(), member_id=uuid.uuid4())


# ---------------------------------------------------------------------------
# Check-out
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_out_closes_session_once(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    schedule_id, member_id = schedule.id, booking.member_id
    await enable_check_in(db_session, schedule_id, now=now)
    await check_in(db_session, schedule_id=schedule_id, member_id=member_id, now=now)

    later = now + timedelta(minutes=45)
    closed = await check_out(
        db_session, schedule_id=schedule_id, member_id=member_id, now=later
    )

    assert closed.checked_out_at == later
    assert closed.check_out_method == AttendanceMethod.SELF
    assert closed.is_auto_checkout is False

    with pytest.raises(NoOpenSessionError):
        await check_out(
            db_session, schedule_id=schedule_id, member_id=member_id, now=later
        )
    with pytest.raises(NotEligibleError):
        await check_in(
            db_session, schedule_id=schedule_id, member_id=member_id, now=later
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_out_never_precedes_check_in(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    await enable_check_in(db_session, schedule.id, now=now)
    await check_in(
        db_session, schedule_id=schedule.id, member_id=booking.member_id, now=now
    )

    # Caller clock a minute behind the one that recorded the check-in.
    closed = await check_out(
        db_session,
        schedule_id=schedule.id,
        member_id=booking.member_id,
        now=now - timedelta(minutes=1),
    )

    assert closed.checked_out_at == closed.checked_in_at


@pytest.mark.asyncio
@pytest.mark.unit
async def test_auto_method_reserved_for_reconciler(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    schedule_id, member_id = schedule.id, booking.member_id
    await enable_check_in(db_session, schedule_id, now=now)

    with pytest.raises(NotEligibleError):
        await check_in(
            db_session,
            schedule_id=schedule_id,
            member_id=member_id,
            method=AttendanceMethod.AUTO,
            now=now,
        )

    await check_in(db_session, schedule_id=schedule_id, member_id=member_id, now=now)
    with pytest.raises(NotEligibleError):
        await check_out(
            db_session,
            schedule_id=schedule_id,
            member_id=member_id,
            method=AttendanceMethod.AUTO,
            now=now + timedelta(minutes=30),
        )

    row = await get_attendance(db_session, schedule_id, member_id)
    assert row.is_open
    assert row.check_out_method is None
    assert row.is_auto_checkout is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_trainer_manual_check_out(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    schedule_id, member_id = schedule.id, booking.member_id
    await enable_check_in(db_session, schedule_id, now=now)
    await check_in(db_session, schedule_id=schedule_id, member_id=member_id, now=now)

    closed = await check_out(
        db_session,
        schedule_id=schedule_id,
        member_id=member_id,
        method=AttendanceMethod.TRAINER_MANUAL,
        now=now + timedelta(minutes=30),
    )

    assert closed.check_out_method == AttendanceMethod.TRAINER_MANUAL
    assert closed.is_auto_checkout is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_out_without_session(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    schedule_id, member_id = schedule.id, booking.member_id

    with pytest.raises(NoOpenSessionError):
        await check_out(
            db_session, schedule_id=schedule_id, member_id=member_id, now=now
        )
    with pytest.raises(ScheduleNotFoundError):
        await check_out(db_session, schedule_id=uuid.uuid4(), member_id=uuid.uuid4())


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_out_after_auto_checkout_finds_nothing(db_session):
    now = utc_now()
    schedule = await insert(
        db_session,
        ScheduleFactory.create(
            start_time=now - timedelta(hours=2),
            status=ScheduleStatus.COMPLETED,
            check_in_enabled=True,
        ),
    )
    attendance = await insert(
        db_session,
        AttendanceFactory.create(
            schedule_id=schedule.id, checked_in_at=schedule.start_time
        ),
    )
    schedule_id, member_id = schedule.id, attendance.member_id
    await close_open_attendance(
        db_session, schedule.id, checkout_at=schedule.end_time + timedelta(minutes=10)
    )

    with pytest.raises(NoOpenSessionError):
        await check_out(
            db_session,
            schedule_id=schedule_id,
            member_id=member_id,
            now=now,
        )

    row = await get_attendance(db_session, schedule_id, member_id)
    assert row.check_out_method == AttendanceMethod.AUTO
    assert row.is_auto_checkout is True


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_out_all_closes_only_open_sessions(db_session):
    now = utc_now()
    schedule = await insert(
        db_session,
        ScheduleFactory.create(
            start_time=now - timedelta(minutes=30),
            status=ScheduleStatus.IN_PROGRESS,
            check_in_enabled=True,
        ),
    )
    schedule_id = schedule.id
    checked_in = now - timedelta(minutes=25)
    open_a, open_b, gone = (
        AttendanceFactory.create(schedule_id=schedule_id, checked_in_at=checked_in),
        AttendanceFactory.create(schedule_id=schedule_id, checked_in_at=checked_in),
        AttendanceFactory.create(
            schedule_id=schedule_id,
            checked_in_at=checked_in,
            checked_out_at=now - timedelta(minutes=5),
            check_out_method=AttendanceMethod.SELF,
        ),
    )
    await insert(db_session, open_a, open_b, gone)

    member_ids = await check_out_all(db_session, schedule_id, now=now)

    assert sorted(member_ids) == sorted([open_a.member_id, open_b.member_id])
    row = await get_attendance(db_session, schedule_id, open_a.member_id)
    assert row.check_out_method == AttendanceMethod.TRAINER_MANUAL
    assert row.checked_out_at == now
    untouched = await get_attendance(db_session, schedule_id, gone.member_id)
    assert untouched.check_out_method == AttendanceMethod.SELF


# ---------------------------------------------------------------------------
# Status view
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_check_in_status_counts_and_member_view(db_session):
    now = utc_now()
    schedule, booking = await _class_about_to_start(db_session, now)
    schedule_id = schedule.id
    await enable_check_in(db_session, schedule_id, now=now)
    await check_in(
        db_session, schedule_id=schedule_id, member_id=booking.member_id, now=now
    )

    status = await get_check_in_status(
        db_session, schedule_id, member_id=booking.member_id, now=now
    )

    assert status.can_check_in is True
    assert status.window_opens_at == schedule.start_time - timedelta(minutes=10)
    assert status.window_closes_at == schedule.end_time
    assert status.total_checked_in == 1
    assert status.currently_present == 1
    assert status.booking.id == booking.id
    assert status.member_id == booking.member_id
