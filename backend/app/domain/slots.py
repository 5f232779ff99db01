"""
Slot streams.

A slot is a candidate booking window of exactly one service duration. Slots
start at every effective working-interval start and step forward by the
service duration while the whole slot still fits in the interval. Bookings
are not consulted here; see ``conflicts`` for that.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Iterator, Optional

from .calendar import TenantCalendar, TimeInterval


@dataclass(frozen=True, order=True)
class AvailabilitySlot:
    start_utc: datetime
    end_utc: datetime
    available: bool = True
    staff_id: Optional[str] = None

    def with_availability(self, available: bool) -> "AvailabilitySlot":
        return replace(self, available=available)

    def with_staff(self, staff_id: Optional[str]) -> "AvailabilitySlot":
        return replace(self, staff_id=staff_id)

    @property
    def bounds(self) -> tuple[datetime, datetime]:
        return (self.start_utc, self.end_utc)


def candidate_starts(interval: TimeInterval, duration: timedelta) -> Iterator[datetime]:
    """Slot starts within ``interval`` for a fixed stride of ``duration``."""
    start = interval.start
    while start + duration <= interval.end:
        yield start
        start += duration


def iter_dates(from_date: date, to_date: date) -> Iterator[date]:
    current = from_date
    while current <= to_date:
        yield current
        current += timedelta(days=1)


def generate_slots(
    calendar: TenantCalendar,
    duration_minutes: int,
    from_date: date,
    to_date: date,
    staff_id: Optional[str] = None,
    last_bookable_date: Optional[date] = None,
) -> Iterator[AvailabilitySlot]:
    """
    Lazily yield candidate slots for local dates in [from_date, to_date].

    ``last_bookable_date`` caps the range at the service's advance-booking
    horizon. An inverted range yields nothing.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    duration = timedelta(minutes=duration_minutes)
    end_date = min(to_date, last_bookable_date) if last_bookable_date else to_date
    for local_date in iter_dates(from_date, end_date):
        for interval in calendar.effective_working_intervals(local_date, staff_id):
            for start in candidate_starts(interval, duration):
                yield AvailabilitySlot(start, start + duration, True, staff_id)


class SlotStream:
    """
    Restartable slot sequence.

    Every ``iter()`` walks the calendar again from ``from_date``, so the stream
    can be consumed more than once with identical results.
    """

    def __init__(
        self,
        calendar: TenantCalendar,
        duration_minutes: int,
        from_date: date,
        to_date: date,
        staff_id: Optional[str] = None,
        last_bookable_date: Optional[date] = None,
    ) -> None:
        self._args = (calendar, duration_minutes, from_date, to_date, staff_id, last_bookable_date)

    def __iter__(self) -> Iterator[AvailabilitySlot]:
        return generate_slots(*self._args)
