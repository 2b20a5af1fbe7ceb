"""
Timezone utilities for converting between UTC and venue-local times.

All database timestamps are stored as naive UTC. Time slots are stored as
naive venue-local wall-clock times (date + start/end), so comparing a scan
against a slot means converting "now" into the attraction's timezone first.
"""

from datetime import date, datetime, time, timedelta

import pytz

UTC_TZ = pytz.UTC
DEFAULT_TIMEZONE = "UTC"


def utc_now() -> datetime:
    """Get current time in UTC as a naive datetime (for database storage)."""
    return datetime.now(UTC_TZ).replace(tzinfo=None)


def to_utc(local_dt: datetime, timezone: str = DEFAULT_TIMEZONE) -> datetime:
    """
    Convert a local datetime to UTC.

    Args:
        local_dt: Datetime in local timezone (can be naive or aware)
        timezone: Timezone name

    Returns:
        Timezone-naive datetime in UTC (for database storage)
    """
    tz = pytz.timezone(timezone)

    if local_dt.tzinfo is None:
        # Naive datetime - assume it's in the specified timezone
        local_dt = tz.localize(local_dt)

    utc_dt = local_dt.astimezone(UTC_TZ)
    return utc_dt.replace(tzinfo=None)


def from_utc(utc_dt: datetime, timezone: str = DEFAULT_TIMEZONE) -> datetime:
    """
    Convert a UTC datetime to local wall-clock time.

    Args:
        utc_dt: Datetime in UTC (can be naive or aware)
        timezone: Target timezone name

    Returns:
        Timezone-naive datetime in the target timezone
    """
    tz = pytz.timezone(timezone)

    if utc_dt.tzinfo is None:
        # Naive datetime - assume it's UTC
        utc_dt = UTC_TZ.localize(utc_dt)

    return utc_dt.astimezone(tz).replace(tzinfo=None)


def local_day_bounds(day: date, timezone: str = DEFAULT_TIMEZONE) -> tuple[datetime, datetime]:
    """
    UTC range covering one local calendar day.

    Returns:
        (start, end) naive UTC datetimes, end exclusive
    """
    start = to_utc(datetime.combine(day, time.min), timezone)
    end = to_utc(datetime.combine(day + timedelta(days=1), time.min), timezone)
    return start, end


def format_slot_time(value: time) -> str:
    """Format a slot boundary like ``6:30 PM``."""
    return value.strftime("%I:%M %p").lstrip("0")
