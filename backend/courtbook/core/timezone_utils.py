"""
Timezone utilities for the court booking platform.

Venue-local time is the platform timezone; bookings store local dates
and times-of-day while external calendar blocks carry absolute timestamps.
"""

from datetime import date, datetime, time
from typing import Optional

import pytz

from .config import settings


def get_platform_timezone(tz_name: Optional[str] = None):
    """
    Get the venue-local timezone.

    Args:
        tz_name: Override zone name; defaults to the configured platform zone

    Returns:
        pytz timezone object
    """
    return pytz.timezone(tz_name or settings.platform_timezone)


def to_local(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Convert a datetime to venue-local time.

    Naive datetimes are assumed to be UTC.
    """
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    return dt.astimezone(get_platform_timezone(tz_name))


def local_today(now: datetime, tz_name: Optional[str] = None) -> date:
    return to_local(now, tz_name).date()


def combine_local(day: date, at: time, tz_name: Optional[str] = None) -> datetime:
    """
    Build an aware venue-local datetime from a local date and time-of-day.

    Uses pytz ``localize`` so DST offsets are resolved for that date.
    """
    tz = get_platform_timezone(tz_name)
    return tz.localize(datetime.combine(day, at.replace(tzinfo=None)))
