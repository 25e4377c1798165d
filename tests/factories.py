"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    schedule = ScheduleFactory.create(max_capacity=2)
    db_session.add(schedule)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timedelta, timezone

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _tomorrow() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=1)


async def insert(db, *rows):
    """Add rows, commit, and return the first (or all when several)."""
    for row in rows:
        db.add(row)
    await db.commit()
    return rows[0] if len(rows) == 1 else rows


# ---------------------------------------------------------------------------
# Schedule Service
# ---------------------------------------------------------------------------


class ScheduleFactory:
    @staticmethod
    def create(**overrides):
        from services.schedule_service.models import Schedule, ScheduleStatus

        start_time = overrides.pop("start_time", _tomorrow())
        defaults = {
            "id": _uuid(),
            "class_id": _uuid(),
            "room_id": _uuid(),
            "trainer_id": _uuid(),
            "title": "Morning Yoga",
            "start_time": start_time,
            "end_time": start_time + timedelta(hours=1),
            "status": ScheduleStatus.SCHEDULED,
            "max_capacity": 10,
            "current_bookings": 0,
            "waitlist_count": 0,
            "check_in_enabled": False,
            "auto_checkout_completed": False,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Schedule(**defaults)


class BookingFactory:
    @staticmethod
    def create(schedule_id=None, **overrides):
        from services.schedule_service.models import Booking, BookingStatus

        defaults = {
            "id": _uuid(),
            "schedule_id": schedule_id or _uuid(),
            "member_id": _uuid(),
            "status": BookingStatus.CONFIRMED,
            "is_waitlist": False,
            "waitlist_position": None,
            "booked_at": _now(),
            "confirmed_at": _now(),
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Booking(**defaults)


class AttendanceFactory:
    @staticmethod
    def create(schedule_id=None, **overrides):
        from services.schedule_service.models import Attendance, AttendanceMethod

        defaults = {
            "id": _uuid(),
            "schedule_id": schedule_id or _uuid(),
            "member_id": _uuid(),
            "checked_in_at": _now(),
            "checked_out_at": None,
            "check_in_method": AttendanceMethod.SELF,
            "is_auto_checkout": False,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Attendance(**defaults)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingEventPublisher:
    """Keeps published domain events in memory."""

    def __init__(self):
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type.value for event in self.events]

    def of_type(self, event_type: str) -> list:
        return [event for event in self.events if event.type.value == event_type]
