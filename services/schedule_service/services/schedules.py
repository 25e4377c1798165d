"""Schedule lookups and administrative status changes."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.schedule_service.errors import ScheduleNotFoundError, storage_operation
from services.schedule_service.events import DomainEvent, EventPublisher, EventType
from services.schedule_service.models import Schedule, ScheduleStatus
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def get_schedule(db: AsyncSession, schedule_id: uuid.UUID) -> Schedule:
    schedule = await db.get(Schedule, schedule_id, populate_existing=True)
    if schedule is None:
        raise ScheduleNotFoundError()
    return schedule


async def lock_schedule(db: AsyncSession, schedule_id: uuid.UUID) -> Schedule:
    """Load a schedule holding its row lock until the transaction ends.

    Every flow that changes a schedule's bookings takes this lock first, so
    those flows queue per schedule and always lock schedule before bookings.
    """
    result = await db.execute(
        select(Schedule)
        .where(Schedule.id == schedule_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    schedule = result.scalar_one_or_none()
    if schedule is None:
        raise ScheduleNotFoundError()
    return schedule


# ---------------------------------------------------------------------------
# Administrative status override
# ---------------------------------------------------------------------------


@dataclass
class StatusChangeResult:
    success: bool
    rows_affected: int
    schedule: Schedule
    previous_status: ScheduleStatus


@storage_operation
async def force_schedule_status(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    target: ScheduleStatus,
    *,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    publisher: Optional[EventPublisher] = None,
) -> StatusChangeResult:
    """Set a schedule's status directly, bypassing the scanner.

    The write is conditional on the status read just before it; if the
    scanner moved the row in between, nothing is written and the result
    reports failure with zero rows so the operator can look again.
    """
    now = ensure_utc(now) if now else utc_now()
    schedule = await get_schedule(db, schedule_id)
    previous = schedule.status

    if previous == target:
        await db.commit()
        return StatusChangeResult(True, 0, schedule, previous)

    try:
        result = await db.execute(
            update(Schedule)
            .where(Schedule.id == schedule_id, Schedule.status == previous)
            .values(status=target, status_changed_at=now)
            .execution_options(synchronize_session=False)
        )
        rows = result.rowcount
        schedule = await get_schedule(db, schedule_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    if rows == 0:
        logger.warning(
            "Forced status change of schedule %s to %s lost a race (now %s)",
            schedule_id,
            target.value,
            schedule.status.value,
        )
        return StatusChangeResult(False, 0, schedule, previous)

    logger.info(
        "Schedule %s forced %s -> %s (reason=%s)",
        schedule_id,
        previous.value,
        target.value,
        reason,
    )
    if publisher is not None:
        await publisher.publish(
            DomainEvent(
                type=EventType.SCHEDULE_STATUS_CHANGED,
                entity_id=schedule_id,
                occurred_at=now,
                payload={
                    "from_status": previous.value,
                    "to_status": target.value,
                    "forced": True,
                    "reason": reason,
                },
            )
        )
    return StatusChangeResult(True, rows, schedule, previous)


# ---------------------------------------------------------------------------
# Pending work view
# ---------------------------------------------------------------------------


@dataclass
class PendingSchedules:
    to_start: list[Schedule] = field(default_factory=list)
    to_complete: list[Schedule] = field(default_factory=list)
    to_auto_checkout: list[Schedule] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.to_start) + len(self.to_complete) + len(self.to_auto_checkout)


@storage_operation
async def list_pending_schedules(
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    grace: Optional[timedelta] = None,
) -> PendingSchedules:
    """Schedules the next sweeps would touch, for operators."""
    now = ensure_utc(now) if now else utc_now()
    if grace is None:
        grace = timedelta(minutes=get_settings().AUTO_CHECKOUT_GRACE_MINUTES)

    result = await db.execute(
        select(Schedule)
        .where(
            or_(
                (Schedule.status == ScheduleStatus.SCHEDULED)
                & (Schedule.start_time <= now),
                (Schedule.status == ScheduleStatus.IN_PROGRESS)
                & (Schedule.end_time < now),
            )
        )
        .order_by(Schedule.start_time.asc())
        .execution_options(populate_existing=True)
    )
    pending = PendingSchedules()
    for schedule in result.scalars().all():
        if schedule.status == ScheduleStatus.SCHEDULED:
            pending.to_start.append(schedule)
        else:
            pending.to_complete.append(schedule)

    result = await db.execute(
        select(Schedule)
        .where(
            Schedule.check_in_enabled.is_(True),
            Schedule.auto_checkout_completed.is_(False),
            Schedule.end_time <= now - grace,
        )
        .order_by(Schedule.end_time.asc())
        .execution_options(populate_existing=True)
    )
    pending.to_auto_checkout = list(result.scalars().all())
    return pending
