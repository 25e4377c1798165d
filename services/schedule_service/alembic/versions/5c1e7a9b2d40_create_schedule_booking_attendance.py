"""create_schedule_booking_attendance

Revision ID: 5c1e7a9b2d40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "5c1e7a9b2d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


schedule_status_enum = postgresql.ENUM(
    "scheduled",
    "in_progress",
    "completed",
    "cancelled",
    "postponed",
    name="schedule_status_enum",
    create_type=False,
)
booking_status_enum = postgresql.ENUM(
    "confirmed",
    "waitlist",
    "cancelled",
    "no_show",
    "completed",
    name="booking_status_enum",
    create_type=False,
)
attendance_method_enum = postgresql.ENUM(
    "self",
    "trainer_manual",
    "auto",
    name="attendance_method_enum",
    create_type=False,
)


def upgrade() -> None:
    """Upgrade schema - Add schedules, bookings and attendance tables."""
    bind = op.get_bind()
    schedule_status_enum.create(bind, checkfirst=True)
    booking_status_enum.create(bind, checkfirst=True)
    attendance_method_enum.create(bind, checkfirst=True)

    op.create_table(
        "schedules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("class_id", sa.Uuid(), nullable=False),
        sa.Column("room_id", sa.Uuid(), nullable=False),
        sa.Column("trainer_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            schedule_status_enum,
            server_default="scheduled",
            nullable=False,
        ),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_capacity", sa.Integer(), nullable=False),
        sa.Column("current_bookings", sa.Integer(), server_default="0", nullable=False),
        sa.Column("waitlist_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "check_in_enabled", sa.Boolean(), server_default="false", nullable=False
        ),
        sa.Column("check_in_opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_opened_by", sa.String(), nullable=True),
        sa.Column(
            "auto_checkout_completed",
            sa.Boolean(),
            server_default="false",
            nullable=False,
        ),
        sa.Column("auto_checkout_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_capacity",
            name="ck_schedules_bookings_within_capacity",
        ),
        sa.CheckConstraint("waitlist_count >= 0", name="ck_schedules_waitlist_count"),
        sa.CheckConstraint("end_time > start_time", name="ck_schedules_time_window"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_schedules_class_id", "schedules", ["class_id"])
    op.create_index("ix_schedules_room_id", "schedules", ["room_id"])
    op.create_index("ix_schedules_trainer_id", "schedules", ["trainer_id"])
    op.create_index("ix_schedules_status_start", "schedules", ["status", "start_time"])
    op.create_index("ix_schedules_status_end", "schedules", ["status", "end_time"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("schedule_id", sa.Uuid(), nullable=False),
        sa.Column("member_id", sa.Uuid(), nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("is_waitlist", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "waitlist_position IS NULL OR waitlist_position >= 1",
            name="ck_bookings_waitlist_position",
        ),
        sa.ForeignKeyConstraint(["schedule_id"], ["schedules.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bookings_schedule_id", "bookings", ["schedule_id"])
    op.create_index("ix_bookings_member_id", "bookings", ["member_id"])
    op.create_index(
        "ix_bookings_waitlist",
        "bookings",
        ["schedule_id", "status", "waitlist_position"],
    )
    op.create_index(
        "uq_bookings_active_member",
        "bookings",
        ["schedule_id", "member_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )

    op.create_table(
        "attendance",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("schedule_id", sa.Uuid(), nullable=False),
        sa.Column("member_id", sa.Uuid(), nullable=False),
        sa.Column("booking_id", sa.Uuid(), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("checked_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_method", attendance_method_enum, nullable=False),
        sa.Column("check_out_method", attendance_method_enum, nullable=True),
        sa.Column(
            "is_auto_checkout", sa.Boolean(), server_default="false", nullable=False
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "checked_out_at IS NULL OR checked_out_at >= checked_in_at",
            name="ck_attendance_checkout_after_checkin",
        ),
        sa.ForeignKeyConstraint(["schedule_id"], ["schedules.id"]),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "schedule_id", "member_id", name="uq_attendance_schedule_member"
        ),
    )
    op.create_index("ix_attendance_schedule_id", "attendance", ["schedule_id"])
    op.create_index("ix_attendance_member_id", "attendance", ["member_id"])
    op.create_index(
        "ix_attendance_open", "attendance", ["schedule_id", "checked_out_at"]
    )


def downgrade() -> None:
    """Downgrade schema - Drop schedule service tables."""
    op.drop_table("attendance")
    op.drop_table("bookings")
    op.drop_table("schedules")

    bind = op.get_bind()
    attendance_method_enum.drop(bind, checkfirst=True)
    booking_status_enum.drop(bind, checkfirst=True)
    schedule_status_enum.drop(bind, checkfirst=True)
