"""Booking admission controller: create and cancel bookings.

Both operations follow the same shape:

1. Lock the schedule row (queues concurrent writers per schedule)
2. Validate state under the lock
3. Apply conditional writes through the capacity ledger / waitlist manager
4. Commit, then publish domain events
"""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.schedule_service.errors import (
    BookingNotCancellableError,
    BookingNotFoundError,
    CapacityFullError,
    ConcurrencyConflictError,
    DuplicateBookingError,
    ScheduleNotOpenError,
    storage_operation,
)
from services.schedule_service.events import (
    DomainEvent,
    EventPublisher,
    EventType,
    publish_all,
)
from services.schedule_service.models import Booking, BookingStatus, ScheduleStatus
from services.schedule_service.services import capacity_ledger, waitlist
from services.schedule_service.services.capacity_ledger import ReserveResult
from services.schedule_service.services.schedules import lock_schedule
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def get_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    booking = await db.get(Booking, booking_id, populate_existing=True)
    if booking is None:
        raise BookingNotFoundError()
    return booking


async def find_active_booking(
    db: AsyncSession, schedule_id: uuid.UUID, member_id: uuid.UUID
) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(
            Booking.schedule_id == schedule_id,
            Booking.member_id == member_id,
            Booking.status != BookingStatus.CANCELLED,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@storage_operation
async def create_booking(
    db: AsyncSession,
    *,
    schedule_id: uuid.UUID,
    member_id: uuid.UUID,
    notes: Optional[str] = None,
    allow_waitlist: bool = True,
    now: Optional[datetime] = None,
    publisher: Optional[EventPublisher] = None,
) -> Booking:
    """Admit a member to a schedule, or queue them when it is full.

    Raises ScheduleNotFoundError, ScheduleNotOpenError, DuplicateBookingError,
    and CapacityFullError when the caller opted out of the waitlist.
    """
    now = ensure_utc(now) if now else utc_now()

    try:
        schedule = await lock_schedule(db, schedule_id)
        if schedule.status != ScheduleStatus.SCHEDULED:
            raise ScheduleNotOpenError(
                f"Schedule is {schedule.status.value}; bookings are closed"
            )

        if await find_active_booking(db, schedule_id, member_id) is not None:
            raise DuplicateBookingError()

        if await capacity_ledger.try_reserve(db, schedule_id) is ReserveResult.RESERVED:
            booking = Booking(
                schedule_id=schedule_id,
                member_id=member_id,
                status=BookingStatus.CONFIRMED,
                is_waitlist=False,
                notes=notes,
                booked_at=now,
                confirmed_at=now,
            )
        else:
            if not allow_waitlist:
                raise CapacityFullError(
                    f"Schedule is full ({schedule.max_capacity} seats)"
                )
            position = await waitlist.enqueue_position(db, schedule_id)
            booking = Booking(
                schedule_id=schedule_id,
                member_id=member_id,
                status=BookingStatus.WAITLIST,
                is_waitlist=True,
                waitlist_position=position,
                notes=notes,
                booked_at=now,
            )

        db.add(booking)
        await db.flush()
        await db.refresh(booking)
        await db.commit()

    except IntegrityError as exc:
        # Partial unique index on (schedule_id, member_id) caught a race the
        # pre-check could not see (another replica, no row lock on SQLite).
        await db.rollback()
        raise DuplicateBookingError() from exc
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Created booking %s for member %s on schedule %s (status=%s, waitlist_position=%s)",
        booking.id,
        member_id,
        schedule_id,
        booking.status.value,
        booking.waitlist_position,
    )

    if publisher is not None:
        await publisher.publish(
            DomainEvent(
                type=EventType.BOOKING_CREATED,
                entity_id=booking.id,
                occurred_at=now,
                payload={
                    "schedule_id": str(schedule_id),
                    "member_id": str(member_id),
                    "status": booking.status.value,
                    "waitlist_position": booking.waitlist_position,
                },
            )
        )
    return booking


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


async def _mark_cancelled(
    db: AsyncSession,
    booking_id: uuid.UUID,
    *,
    from_status: BookingStatus,
    reason: Optional[str],
    now: datetime,
) -> bool:
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == from_status)
        .values(
            status=BookingStatus.CANCELLED,
            is_waitlist=False,
            waitlist_position=None,
            cancelled_at=now,
            cancellation_reason=reason,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


@storage_operation
async def cancel_booking(
    db: AsyncSession,
    *,
    booking_id: uuid.UUID,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    publisher: Optional[EventPublisher] = None,
) -> tuple[Booking, Optional[Booking]]:
    """Cancel a booking and hand its seat to the head of the waitlist.

    Returns ``(booking, promoted)`` where promoted is the waitlist booking that
    took the freed seat, if any. Cancelling an already-cancelled booking is a
    no-op that returns it unchanged.
    """
    now = ensure_utc(now) if now else utc_now()
    promoted: Optional[Booking] = None

    try:
        booking = await get_booking(db, booking_id)
        schedule_id = booking.schedule_id

        await lock_schedule(db, schedule_id)
        # Re-read under the lock; a concurrent cancel may have won.
        booking = await get_booking(db, booking_id)
        previous = booking.status

        if previous == BookingStatus.CANCELLED:
            await db.commit()
            return booking, None

        if previous not in (BookingStatus.CONFIRMED, BookingStatus.WAITLIST):
            raise BookingNotCancellableError(
                f"Booking is {previous.value} and can no longer be cancelled"
            )

        if not await _mark_cancelled(
            db, booking_id, from_status=previous, reason=reason, now=now
        ):
            raise ConcurrencyConflictError(
                f"Booking {booking_id} changed while being cancelled"
            )

        if previous == BookingStatus.CONFIRMED:
            await capacity_ledger.release(db, schedule_id)
            promoted = await waitlist.promote_next(db, schedule_id, now=now)
        else:
            await waitlist.decrement_count(db, schedule_id)
            await waitlist.compact(db, schedule_id)

        booking = await get_booking(db, booking_id)
        await db.commit()

    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Cancelled booking %s (was %s) on schedule %s; promoted=%s",
        booking_id,
        previous.value,
        schedule_id,
        promoted.id if promoted else None,
    )

    if publisher is not None:
        events = [
            DomainEvent(
                type=EventType.BOOKING_CANCELLED,
                entity_id=booking_id,
                occurred_at=now,
                payload={
                    "schedule_id": str(schedule_id),
                    "member_id": str(booking.member_id),
                    "previous_status": previous.value,
                    "reason": reason,
                },
            )
        ]
        if promoted is not None:
            events.append(waitlist.promotion_event(promoted, now))
        await publish_all(publisher, events)

    return booking, promoted
