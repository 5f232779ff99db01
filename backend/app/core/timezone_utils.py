"""
Timezone utilities for BookBetter.

Working-hour templates are stored as tenant-local wall-clock minutes; every
comparison against bookings and exceptions happens in UTC.
"""

from datetime import date, datetime, timedelta
from typing import Optional

import pytz
from pytz.tzinfo import BaseTzInfo

from .config import settings


def get_tenant_timezone(tz_name: Optional[str]) -> BaseTzInfo:
    """
    Resolve a tenant's IANA timezone name.

    Falls back to the configured default when the tenant has none.

    Raises:
        pytz.UnknownTimeZoneError: If the name is not a known zone
    """
    return pytz.timezone(tz_name or settings.default_timezone)


def utc_now() -> datetime:
    """Current aware datetime in UTC."""
    return datetime.now(pytz.UTC)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on read).
    """
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def wall_clock_to_utc(local_date: date, minute_of_day: int, tz: BaseTzInfo) -> datetime:
    """
    Convert a tenant-local wall-clock time on a given date to a UTC instant.

    ``minute_of_day`` may be 1440, meaning midnight at the end of the day.
    Non-existent local times (spring-forward gap) and ambiguous ones
    (fall-back overlap) resolve as standard time.
    """
    naive = datetime(local_date.year, local_date.month, local_date.day) + timedelta(
        minutes=minute_of_day
    )
    localized = tz.normalize(tz.localize(naive, is_dst=False))
    return localized.astimezone(pytz.UTC)


def local_date_for(dt: datetime, tz: BaseTzInfo) -> date:
    """Tenant-local calendar date of a UTC instant."""
    return ensure_utc(dt).astimezone(tz).date()


def tenant_today(tz: BaseTzInfo, now: Optional[datetime] = None) -> date:
    """'Today' in the tenant's timezone."""
    return local_date_for(now or utc_now(), tz)


def local_day_bounds_utc(local_date: date, tz: BaseTzInfo) -> tuple[datetime, datetime]:
    """UTC instants bounding a tenant-local calendar day as [start, end)."""
    return (
        wall_clock_to_utc(local_date, 0, tz),
        wall_clock_to_utc(local_date + timedelta(days=1), 0, tz),
    )
