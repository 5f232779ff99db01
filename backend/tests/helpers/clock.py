"""Fixed instants shared by tests that depend on "now"."""

from datetime import date, datetime, timedelta, timezone

# Friday 2027-01-01 12:00 UTC (07:00 in New York). Monday 2027-01-04 is the
# first working day after it; January keeps New York on EST (UTC-5).
FROZEN_NOW = datetime(2027, 1, 1, 12, 0, tzinfo=timezone.utc)
MONDAY = date(2027, 1, 4)
NEXT_MONDAY = date(2027, 1, 11)
NY_OFFSET = timedelta(hours=5)


def ny_local(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant of a New York EST wall-clock time."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc) + NY_OFFSET
