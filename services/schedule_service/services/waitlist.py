"""Waitlist manager: strictly FIFO queue of WAITLIST bookings per schedule.

Positions of active waitlist entries always form 1..N. Every mutation here
runs while the caller holds the schedule row lock (see ``lock_schedule``),
and every write is a single conditional statement.
"""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.schedule_service.errors import ConcurrencyConflictError, storage_operation
from services.schedule_service.events import DomainEvent, EventPublisher, EventType
from services.schedule_service.models import Booking, BookingStatus, Schedule
from services.schedule_service.services import capacity_ledger
from services.schedule_service.services.capacity_ledger import ReserveResult
from services.schedule_service.services.schedules import lock_schedule
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def enqueue_position(db: AsyncSession, schedule_id: uuid.UUID) -> int:
    """Bump ``waitlist_count`` and return it as the new entry's position."""
    result = await db.execute(
        update(Schedule)
        .where(Schedule.id == schedule_id)
        .values(waitlist_count=Schedule.waitlist_count + 1)
        .returning(Schedule.waitlist_count)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one()


async def decrement_count(db: AsyncSession, schedule_id: uuid.UUID) -> bool:
    result = await db.execute(
        update(Schedule)
        .where(Schedule.id == schedule_id, Schedule.waitlist_count > 0)
        .values(waitlist_count=Schedule.waitlist_count - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.error(
            "Waitlist invariant violated: decrement on schedule %s with waitlist_count=0 (clamped)",
            schedule_id,
        )
        return False
    return True


async def compact(db: AsyncSession, schedule_id: uuid.UUID) -> int:
    """Renumber active waitlist entries to 1..N in current order.

    One UPDATE ... FROM over a ROW_NUMBER() ranking; rows already in place
    are not touched, so running it twice changes nothing the second time.
    Returns the number of rows renumbered.
    """
    ranked = (
        select(
            Booking.id.label("booking_id"),
            func.row_number()
            .over(order_by=(Booking.waitlist_position.asc(), Booking.booked_at.asc()))
            .label("new_position"),
        )
        .where(
            Booking.schedule_id == schedule_id,
            Booking.status == BookingStatus.WAITLIST,
        )
        .subquery()
    )
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == ranked.c.booking_id,
            Booking.waitlist_position != ranked.c.new_position,
        )
        .values(waitlist_position=ranked.c.new_position)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def head_of_waitlist(
    db: AsyncSession, schedule_id: uuid.UUID
) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(
            Booking.schedule_id == schedule_id,
            Booking.status == BookingStatus.WAITLIST,
        )
        .order_by(Booking.waitlist_position.asc(), Booking.booked_at.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_waitlist(db: AsyncSession, schedule_id: uuid.UUID) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(
            Booking.schedule_id == schedule_id,
            Booking.status == BookingStatus.WAITLIST,
        )
        .order_by(Booking.waitlist_position.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def promote_next(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
) -> Optional[Booking]:
    """Move the lowest-position waitlist entry into a confirmed seat.

    Does not commit. Returns the promoted booking, or None when the waitlist
    is empty or no seat is free (a concurrent promotion took it); the next
    cancellation tries again.
    """
    now = ensure_utc(now) if now else utc_now()
    await lock_schedule(db, schedule_id)

    head = await head_of_waitlist(db, schedule_id)
    if head is None:
        return None

    if await capacity_ledger.try_reserve(db, schedule_id) is ReserveResult.FULL:
        logger.info(
            "No free seat on schedule %s; booking %s stays at waitlist position %s",
            schedule_id,
            head.id,
            head.waitlist_position,
        )
        return None

    result = await db.execute(
        update(Booking)
        .where(Booking.id == head.id, Booking.status == BookingStatus.WAITLIST)
        .values(
            status=BookingStatus.CONFIRMED,
            is_waitlist=False,
            waitlist_position=None,
            confirmed_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflictError(
            f"Waitlist booking {head.id} changed while being promoted"
        )

    await decrement_count(db, schedule_id)
    await compact(db, schedule_id)

    promoted = await db.get(Booking, head.id, populate_existing=True)
    logger.info(
        "Promoted booking %s (member %s) from waitlist on schedule %s",
        promoted.id,
        promoted.member_id,
        schedule_id,
    )
    return promoted


@storage_operation
async def promote_next_for_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
    publisher: Optional[EventPublisher] = None,
) -> Optional[Booking]:
    """Admin entry point: promote in its own transaction and publish."""
    now = ensure_utc(now) if now else utc_now()
    try:
        promoted = await promote_next(db, schedule_id, now=now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    if promoted is not None and publisher is not None:
        await publisher.publish(promotion_event(promoted, now))
    return promoted


def promotion_event(booking: Booking, now: datetime) -> DomainEvent:
    return DomainEvent(
        type=EventType.BOOKING_CONFIRMED,
        entity_id=booking.id,
        occurred_at=now,
        payload={
            "schedule_id": str(booking.schedule_id),
            "member_id": str(booking.member_id),
            "promoted_from_waitlist": True,
        },
    )
