import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from libs.db.types import UTCDateTime
from services.schedule_service.models.enums import (
    AttendanceMethod,
    BookingStatus,
    ScheduleStatus,
    enum_values,
)
from sqlalchemy import Boolean, CheckConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# SCHEDULE MODEL
# ============================================================================


class Schedule(Base):
    """One occurrence of a class, with a fixed time window and capacity."""

    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_capacity",
            name="ck_schedules_bookings_within_capacity",
        ),
        CheckConstraint("waitlist_count >= 0", name="ck_schedules_waitlist_count"),
        CheckConstraint("end_time > start_time", name="ck_schedules_time_window"),
        Index("ix_schedules_status_start", "status", "start_time"),
        Index("ix_schedules_status_end", "status", "end_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # References owned by other services (no FK across service boundaries)
    class_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    room_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    trainer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True
    )
    title: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # === Timing ===
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    status: Mapped[ScheduleStatus] = mapped_column(
        SAEnum(
            ScheduleStatus,
            name="schedule_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=ScheduleStatus.SCHEDULED,
        server_default="scheduled",
    )
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )

    # === Capacity ===
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_bookings: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    waitlist_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    # === Check-in ===
    check_in_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    check_in_opened_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    check_in_opened_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # === Auto check-out claim ===
    auto_checkout_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    auto_checkout_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now
    )

    bookings = relationship("Booking", back_populates="schedule", lazy="raise")

    def __repr__(self):
        return f"<Schedule {self.id} ({self.status.value}) at {self.start_time}>"


# ============================================================================
# BOOKING MODEL
# ============================================================================


class Booking(Base):
    """A member's claim on a schedule, confirmed or waitlisted. Never deleted."""

    __tablename__ = "bookings"
    __table_args__ = (
        # At most one live booking per member per schedule.
        Index(
            "uq_bookings_active_member",
            "schedule_id",
            "member_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("ix_bookings_waitlist", "schedule_id", "status", "waitlist_position"),
        CheckConstraint(
            "waitlist_position IS NULL OR waitlist_position >= 1",
            name="ck_bookings_waitlist_position",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("schedules.id"), nullable=False, index=True
    )
    member_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    status: Mapped[BookingStatus] = mapped_column(
        SAEnum(
            BookingStatus,
            name="booking_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=BookingStatus.CONFIRMED,
    )
    is_waitlist: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    waitlist_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    booked_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now
    )

    schedule = relationship("Schedule", back_populates="bookings", lazy="raise")

    def __repr__(self):
        return f"<Booking {self.id} member={self.member_id} ({self.status.value})>"


# ============================================================================
# ATTENDANCE MODEL
# ============================================================================


class Attendance(Base):
    """One physical check-in session of a member on a schedule."""

    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("schedule_id", "member_id", name="uq_attendance_schedule_member"),
        CheckConstraint(
            "checked_out_at IS NULL OR checked_out_at >= checked_in_at",
            name="ck_attendance_checkout_after_checkin",
        ),
        Index("ix_attendance_open", "schedule_id", "checked_out_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("schedules.id"), nullable=False, index=True
    )
    member_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    booking_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=True
    )

    checked_in_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    checked_out_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    check_in_method: Mapped[AttendanceMethod] = mapped_column(
        SAEnum(
            AttendanceMethod,
            name="attendance_method_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=AttendanceMethod.SELF,
    )
    check_out_method: Mapped[Optional[AttendanceMethod]] = mapped_column(
        SAEnum(
            AttendanceMethod,
            name="attendance_method_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )
    is_auto_checkout: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now
    )

    @property
    def is_open(self) -> bool:
        return self.checked_out_at is None

    def __repr__(self):
        return f"<Attendance schedule={self.schedule_id} member={self.member_id}>"
