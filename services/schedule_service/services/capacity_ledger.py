"""Capacity ledger: the only code that moves ``schedules.current_bookings``.

Both operations are single conditional UPDATE statements, so the bound is
enforced by the database row lock rather than by a read in Python followed by
a write. Neither commits; they join the caller's transaction.
"""

import enum
import uuid

from libs.common.logging import get_logger
from services.schedule_service.models import Schedule
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class ReserveResult(str, enum.Enum):
    RESERVED = "reserved"
    FULL = "full"


async def try_reserve(db: AsyncSession, schedule_id: uuid.UUID) -> ReserveResult:
    """Take one seat if one is free.

    UPDATE schedules SET current_bookings = current_bookings + 1
    WHERE id = :id AND current_bookings < max_capacity
    """
    result = await db.execute(
        update(Schedule)
        .where(
            Schedule.id == schedule_id,
            Schedule.current_bookings < Schedule.max_capacity,
        )
        .values(current_bookings=Schedule.current_bookings + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return ReserveResult.RESERVED
    return ReserveResult.FULL


async def release(db: AsyncSession, schedule_id: uuid.UUID) -> bool:
    """Give one seat back, never going below zero.

    Returns False when the counter was already zero; that is an invariant
    violation upstream (a release without a matching reserve) and is logged.
    """
    result = await db.execute(
        update(Schedule)
        .where(Schedule.id == schedule_id, Schedule.current_bookings > 0)
        .values(current_bookings=Schedule.current_bookings - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return True

    logger.error(
        "Capacity invariant violated: release on schedule %s with current_bookings=0 (clamped)",
        schedule_id,
        extra={"extra_fields": {"schedule_id": str(schedule_id), "invariant": "current_bookings>=0"}},
    )
    return False
