"""Status transition scanner.

Moves schedules forward through their automatic transitions:
- SCHEDULED → IN_PROGRESS once ``start_time <= now``
- IN_PROGRESS → COMPLETED once ``end_time < now``

Each transition is one bulk conditional UPDATE in its own transaction, so a
run can be repeated, overlap with another replica, or die half way without
moving any row backwards.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.schedule_service.errors import storage_operation
from services.schedule_service.events import (
    DomainEvent,
    EventPublisher,
    EventType,
    publish_all,
)
from services.schedule_service.models import Schedule, ScheduleStatus
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

logger = get_logger(__name__)


@dataclass
class StatusSweepResult:
    started: list[uuid.UUID] = field(default_factory=list)
    completed: list[uuid.UUID] = field(default_factory=list)

    @property
    def rows_affected(self) -> int:
        return len(self.started) + len(self.completed)


async def _advance(
    db: AsyncSession,
    *,
    from_status: ScheduleStatus,
    to_status: ScheduleStatus,
    condition: ColumnElement[bool],
    now: datetime,
) -> list[uuid.UUID]:
    try:
        result = await db.execute(
            update(Schedule)
            .where(Schedule.status == from_status, condition)
            .values(status=to_status, status_changed_at=now)
            .returning(Schedule.id)
            .execution_options(synchronize_session=False)
        )
        ids = list(result.scalars().all())
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return ids


@storage_operation
async def run_status_sweep(
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    publisher: Optional[EventPublisher] = None,
) -> StatusSweepResult:
    """Apply both automatic transitions for ``now`` and publish one event per row."""
    now = ensure_utc(now) if now else utc_now()
    sweep = StatusSweepResult()

    sweep.started = await _advance(
        db,
        from_status=ScheduleStatus.SCHEDULED,
        to_status=ScheduleStatus.IN_PROGRESS,
        condition=Schedule.start_time <= now,
        now=now,
    )
    sweep.completed = await _advance(
        db,
        from_status=ScheduleStatus.IN_PROGRESS,
        to_status=ScheduleStatus.COMPLETED,
        condition=Schedule.end_time < now,
        now=now,
    )

    if sweep.rows_affected:
        logger.info(
            "Schedule status sweep: %d SCHEDULED→IN_PROGRESS, %d IN_PROGRESS→COMPLETED",
            len(sweep.started),
            len(sweep.completed),
        )

    if publisher is not None:
        events = [
            _status_event(schedule_id, ScheduleStatus.SCHEDULED, ScheduleStatus.IN_PROGRESS, now)
            for schedule_id in sweep.started
        ]
        events += [
            _status_event(schedule_id, ScheduleStatus.IN_PROGRESS, ScheduleStatus.COMPLETED, now)
            for schedule_id in sweep.completed
        ]
        await publish_all(publisher, events)

    return sweep


def _status_event(
    schedule_id: uuid.UUID,
    from_status: ScheduleStatus,
    to_status: ScheduleStatus,
    now: datetime,
) -> DomainEvent:
    return DomainEvent(
        type=EventType.SCHEDULE_STATUS_CHANGED,
        entity_id=schedule_id,
        occurred_at=now,
        payload={
            "from_status": from_status.value,
            "to_status": to_status.value,
            "forced": False,
        },
    )
