"""Auto check-out reconciler.

Closes attendance left open once a schedule's end time plus the grace window
has passed. Runs every minute from the worker and may run on several
replicas at once, so every schedule is claimed before it is touched:

    UPDATE schedules SET auto_checkout_completed = true, auto_checkout_at = :now
    WHERE id = :id AND auto_checkout_completed = false

Only the caller whose claim affected a row goes on to close attendance. The
claim is committed first; if closing fails afterwards the schedule stays
claimed with attendance still open. That outcome is logged as an alert and is
never retried automatically.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.schedule_service.errors import ScheduleNotOpenError, storage_operation
from services.schedule_service.events import (
    DomainEvent,
    EventPublisher,
    EventType,
    publish_all,
)
from services.schedule_service.models import (
    Attendance,
    AttendanceMethod,
    Schedule,
    ScheduleStatus,
)
from services.schedule_service.services.attendance_tracker import closing_time
from services.schedule_service.services.schedules import get_schedule
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def default_grace() -> timedelta:
    return timedelta(minutes=get_settings().AUTO_CHECKOUT_GRACE_MINUTES)


@dataclass
class ClosedAttendance:
    attendance_id: uuid.UUID
    member_id: uuid.UUID
    checked_out_at: datetime


@dataclass
class AutoCheckoutOutcome:
    schedule_id: uuid.UUID
    claimed: bool
    closed: list[ClosedAttendance] = field(default_factory=list)
    degraded: bool = False

    @property
    def members_checked_out(self) -> int:
        return len(self.closed)


@dataclass
class AutoCheckoutSweepResult:
    candidates: int = 0
    claimed: list[uuid.UUID] = field(default_factory=list)
    skipped: list[uuid.UUID] = field(default_factory=list)
    degraded: list[uuid.UUID] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)
    members_checked_out: int = 0
    reminders_sent: int = 0

    @property
    def rows_affected(self) -> int:
        return len(self.claimed)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


async def find_candidates(
    db: AsyncSession,
    *,
    now: datetime,
    grace: timedelta,
    limit: int,
) -> list[uuid.UUID]:
    result = await db.execute(
        select(Schedule.id)
        .where(
            Schedule.check_in_enabled.is_(True),
            Schedule.auto_checkout_completed.is_(False),
            Schedule.end_time <= now - grace,
        )
        .order_by(Schedule.end_time.asc())
        .limit(limit)
    )
    ids = list(result.scalars().all())
    # End the read transaction before claiming one schedule at a time.
    await db.commit()
    return ids


async def claim_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    now: datetime,
    due_before: Optional[datetime] = None,
) -> Optional[datetime]:
    """Claim a schedule for auto check-out and commit the claim.

    Returns the schedule's end time when this caller won the claim, None when
    another caller already holds it. ``due_before`` re-checks the deadline in
    the same statement so a stale candidate list cannot claim early.
    """
    stmt = update(Schedule).where(
        Schedule.id == schedule_id,
        Schedule.auto_checkout_completed.is_(False),
    )
    if due_before is not None:
        stmt = stmt.where(
            Schedule.check_in_enabled.is_(True),
            Schedule.end_time <= due_before,
        )
    try:
        result = await db.execute(
            stmt.values(auto_checkout_completed=True, auto_checkout_at=now)
            .returning(Schedule.end_time)
            .execution_options(synchronize_session=False)
        )
        end_time = result.scalar_one_or_none()
        try:
            await db.commit()
        except asyncio.CancelledError as exc:
            # The driver may finish the commit after we stop waiting for it.
            if end_time is not None:
                _alert_degraded(schedule_id, exc, stage="claim commit was interrupted")
            raise
    except Exception:
        await db.rollback()
        raise
    return end_time


async def close_open_attendance(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    checkout_at: datetime,
) -> list[ClosedAttendance]:
    """Close every open attendance row of a schedule in one statement.

    Rows still open when this runs get ``checkout_at`` (never earlier than
    their own check-in). Rows a member closed in the meantime are untouched.
    """
    try:
        result = await db.execute(
            update(Attendance)
            .where(
                Attendance.schedule_id == schedule_id,
                Attendance.checked_out_at.is_(None),
            )
            .values(
                checked_out_at=closing_time(checkout_at),
                check_out_method=AttendanceMethod.AUTO,
                is_auto_checkout=True,
            )
            .returning(Attendance.id, Attendance.member_id, Attendance.checked_out_at)
            .execution_options(synchronize_session=False)
        )
        closed = [ClosedAttendance(*row) for row in result.all()]
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return closed


def _alert_degraded(
    schedule_id: uuid.UUID,
    exc: BaseException,
    *,
    stage: str = "failed to close attendance",
) -> None:
    logger.critical(
        "Auto check-out claimed schedule %s but %s: %r. "
        "Open attendance rows may remain and will not be retried.",
        schedule_id,
        stage,
        exc,
        extra={
            "extra_fields": {
                "alert": True,
                "alert_type": "auto_checkout_degraded",
                "schedule_id": str(schedule_id),
            }
        },
    )


async def reconcile_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    now: datetime,
    grace: timedelta,
    enforce_deadline: bool = True,
    publisher: Optional[EventPublisher] = None,
) -> AutoCheckoutOutcome:
    """Claim one schedule and close its open attendance."""
    end_time = await claim_schedule(
        db,
        schedule_id,
        now=now,
        due_before=(now - grace) if enforce_deadline else None,
    )
    if end_time is None:
        logger.debug("Schedule %s already claimed for auto check-out", schedule_id)
        return AutoCheckoutOutcome(schedule_id=schedule_id, claimed=False)

    outcome = AutoCheckoutOutcome(schedule_id=schedule_id, claimed=True)
    checkout_at = min(end_time + grace, now)
    try:
        outcome.closed = await close_open_attendance(
            db, schedule_id, checkout_at=checkout_at
        )
    except asyncio.CancelledError as exc:
        _alert_degraded(schedule_id, exc)
        raise
    except Exception as exc:
        _alert_degraded(schedule_id, exc)
        outcome.degraded = True
        return outcome

    logger.info(
        "Auto check-out completed for schedule %s: %d member(s) checked out at %s",
        schedule_id,
        outcome.members_checked_out,
        checkout_at.isoformat(),
    )

    if publisher is not None:
        await publish_all(
            publisher,
            [
                DomainEvent(
                    type=EventType.ATTENDANCE_AUTO_CHECKED_OUT,
                    entity_id=item.attendance_id,
                    occurred_at=now,
                    payload={
                        "schedule_id": str(schedule_id),
                        "member_id": str(item.member_id),
                        "checked_out_at": item.checked_out_at.isoformat(),
                    },
                )
                for item in outcome.closed
            ],
        )
    return outcome


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------


@storage_operation
async def run_auto_checkout_sweep(
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    grace: Optional[timedelta] = None,
    publisher: Optional[EventPublisher] = None,
    batch_size: Optional[int] = None,
    item_timeout: Optional[float] = None,
) -> AutoCheckoutSweepResult:
    """One reconciler pass: checkout reminders, then every due schedule.

    A schedule that fails before its claim is logged and picked up by the
    next run. Each schedule is bounded by ``item_timeout`` so one slow row
    does not hold up the rest of the batch.
    """
    settings = get_settings()
    now = ensure_utc(now) if now else utc_now()
    grace = grace if grace is not None else default_grace()
    batch_size = batch_size or settings.AUTO_CHECKOUT_BATCH_SIZE
    item_timeout = item_timeout or settings.SWEEP_ITEM_TIMEOUT_SECONDS

    sweep = AutoCheckoutSweepResult()

    try:
        sweep.reminders_sent = await send_checkout_reminders(
            db, now=now, publisher=publisher
        )
    except Exception as exc:
        await db.rollback()
        logger.error("Checkout reminder pass failed: %s", exc)

    candidates = await find_candidates(db, now=now, grace=grace, limit=batch_size)
    sweep.candidates = len(candidates)

    for schedule_id in candidates:
        try:
            outcome = await asyncio.wait_for(
                reconcile_schedule(
                    db, schedule_id, now=now, grace=grace, publisher=publisher
                ),
                timeout=item_timeout,
            )
        except asyncio.TimeoutError:
            await db.rollback()
            sweep.failed.append(schedule_id)
            logger.error(
                "Auto check-out of schedule %s timed out after %.1fs",
                schedule_id,
                item_timeout,
            )
            continue
        except Exception as exc:
            await db.rollback()
            sweep.failed.append(schedule_id)
            logger.error("Auto check-out of schedule %s failed: %s", schedule_id, exc)
            continue

        if not outcome.claimed:
            sweep.skipped.append(schedule_id)
            continue
        sweep.claimed.append(schedule_id)
        sweep.members_checked_out += outcome.members_checked_out
        if outcome.degraded:
            sweep.degraded.append(schedule_id)

    if sweep.candidates or sweep.reminders_sent:
        logger.info(
            "Auto check-out sweep: %d candidate(s), %d claimed, %d skipped, %d failed, "
            "%d degraded, %d member(s) checked out, %d reminder(s)",
            sweep.candidates,
            len(sweep.claimed),
            len(sweep.skipped),
            len(sweep.failed),
            len(sweep.degraded),
            sweep.members_checked_out,
            sweep.reminders_sent,
        )
    return sweep


@storage_operation
async def auto_checkout_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
    grace: Optional[timedelta] = None,
    publisher: Optional[EventPublisher] = None,
) -> AutoCheckoutOutcome:
    """Admin path: run auto check-out for one schedule right away.

    Skips the grace deadline but refuses a schedule that is already claimed.
    """
    now = ensure_utc(now) if now else utc_now()
    grace = grace if grace is not None else default_grace()

    schedule = await get_schedule(db, schedule_id)
    already_claimed = schedule.auto_checkout_completed
    await db.commit()
    if already_claimed:
        raise ScheduleNotOpenError(
            f"Schedule {schedule_id} has already been auto checked out"
        )

    outcome = await reconcile_schedule(
        db,
        schedule_id,
        now=now,
        grace=grace,
        enforce_deadline=False,
        publisher=publisher,
    )
    if not outcome.claimed:
        raise ScheduleNotOpenError(
            f"Schedule {schedule_id} has already been auto checked out"
        )
    return outcome


# ---------------------------------------------------------------------------
# Reminders and stats
# ---------------------------------------------------------------------------


async def send_checkout_reminders(
    db: AsyncSession,
    *,
    now: datetime,
    publisher: Optional[EventPublisher] = None,
) -> int:
    """Remind members still checked in to schedules ending in about five minutes.

    The window is one minute wide so the every-minute cadence sends one
    reminder per schedule.
    """
    lead = timedelta(minutes=get_settings().CHECKOUT_REMINDER_MINUTES_BEFORE_END)
    window_start = now + lead
    window_end = window_start + timedelta(minutes=1)

    result = await db.execute(
        select(Attendance.id, Attendance.member_id, Schedule.id, Schedule.end_time)
        .join(Schedule, Schedule.id == Attendance.schedule_id)
        .where(
            Schedule.status == ScheduleStatus.IN_PROGRESS,
            Schedule.check_in_enabled.is_(True),
            Schedule.end_time >= window_start,
            Schedule.end_time < window_end,
            Attendance.checked_out_at.is_(None),
        )
    )
    rows = result.all()
    await db.commit()

    if publisher is not None and rows:
        await publish_all(
            publisher,
            [
                DomainEvent(
                    type=EventType.ATTENDANCE_CHECKOUT_REMINDER,
                    entity_id=attendance_id,
                    occurred_at=now,
                    payload={
                        "schedule_id": str(schedule_id),
                        "member_id": str(member_id),
                        "end_time": end_time.isoformat(),
                    },
                )
                for attendance_id, member_id, schedule_id, end_time in rows
            ],
        )
    return len(rows)


@dataclass
class AutoCheckoutStats:
    since: datetime
    generated_at: datetime
    schedules_auto_checked_out: int
    members_auto_checked_out: int


@storage_operation
async def get_auto_checkout_stats(
    db: AsyncSession, *, now: Optional[datetime] = None
) -> AutoCheckoutStats:
    """Auto check-out activity over the last 24 hours."""
    now = ensure_utc(now) if now else utc_now()
    since = now - timedelta(hours=24)

    schedules = await db.execute(
        select(func.count(Schedule.id)).where(
            Schedule.auto_checkout_completed.is_(True),
            Schedule.auto_checkout_at >= since,
        )
    )
    members = await db.execute(
        select(func.count(Attendance.id))
        .join(Schedule, Schedule.id == Attendance.schedule_id)
        .where(
            Attendance.is_auto_checkout.is_(True),
            Schedule.auto_checkout_at >= since,
        )
    )
    return AutoCheckoutStats(
        since=since,
        generated_at=now,
        schedules_auto_checked_out=schedules.scalar_one(),
        members_auto_checked_out=members.scalar_one(),
    )
