"""Datetime utilities for timezone-aware UTC timestamps.

Every timestamp the schedule engine stores or compares is an aware UTC
datetime. "Now" is read from one place (``utc_now``) and never rebuilt by
formatting to a local-time string and parsing it back.

Usage:
    from libs.common.datetime_utils import utc_now

    now = utc_now()
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    This replaces the deprecated datetime.utcnow() which returns naive datetimes.
    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to UTC.

    Naive values are rejected: their zone is unknowable, and guessing is how
    off-by-seven-hours bugs get in.
    """
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError(f"naive datetime not allowed: {value!r}")
    return value.astimezone(timezone.utc)


def to_display_zone(value: datetime, tz_name: str) -> datetime:
    """Convert a UTC timestamp to a named zone for presentation only."""
    return ensure_utc(value).astimezone(ZoneInfo(tz_name))
