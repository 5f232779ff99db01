"""
Tenant calendar model.

Working-hour templates are recurring, tenant-local wall-clock ranges keyed by
day of week (0 = Sunday). Exceptions are absolute UTC blocks. The calendar
turns both into the ordered UTC intervals a staff member can actually work on
a given local date. Nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Union

from pytz.tzinfo import BaseTzInfo

from ..core.constants import MINUTES_PER_DAY
from ..core.timezone_utils import ensure_utc, wall_clock_to_utc


@dataclass(frozen=True)
class AllStaff:
    """Scope of a rule or exception that applies to every staff member."""

    def applies_to(self, staff_id: Optional[str]) -> bool:
        return True


@dataclass(frozen=True)
class SpecificStaff:
    """Scope of a rule or exception owned by one staff member."""

    staff_id: str

    def applies_to(self, staff_id: Optional[str]) -> bool:
        return staff_id == self.staff_id


StaffScope = Union[AllStaff, SpecificStaff]


def scope_for(staff_id: Optional[str]) -> StaffScope:
    """Build the scope for a nullable ``staff_id`` column value."""
    return SpecificStaff(staff_id) if staff_id else AllStaff()


def day_of_week(local_date: date) -> int:
    """Day-of-week index with Sunday = 0 through Saturday = 6."""
    return (local_date.weekday() + 1) % 7


@dataclass(frozen=True, order=True)
class TimeInterval:
    """Half-open UTC interval [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"Interval start {self.start} must be before end {self.end}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


@dataclass(frozen=True)
class WorkingHoursTemplate:
    """A recurring local wall-clock range on one weekday."""

    day_of_week: int
    start_minute: int
    end_minute: int
    scope: StaffScope = field(default_factory=AllStaff)

    def __post_init__(self) -> None:
        if not 0 <= self.day_of_week <= 6:
            raise ValueError(f"day_of_week must be 0-6, got {self.day_of_week}")
        if not 0 <= self.start_minute < self.end_minute <= MINUTES_PER_DAY:
            raise ValueError(
                f"Working hours must satisfy 0 <= start < end <= {MINUTES_PER_DAY}, "
                f"got {self.start_minute}-{self.end_minute}"
            )


@dataclass(frozen=True)
class ExceptionBlock:
    """Absolute UTC block removed from working hours (time off, holidays)."""

    start: datetime
    end: datetime
    scope: StaffScope = field(default_factory=AllStaff)
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Exception start must be before end")

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(ensure_utc(self.start), ensure_utc(self.end))


def merge_intervals(intervals: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Sort and coalesce overlapping or touching intervals."""
    merged: List[TimeInterval] = []
    for interval in sorted(intervals):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = TimeInterval(last.start, interval.end)
        else:
            merged.append(interval)
    return merged


def subtract_interval(interval: TimeInterval, block: TimeInterval) -> List[TimeInterval]:
    """
    Remove ``block`` from ``interval``.

    The result has zero, one, or two pieces depending on where the block falls.
    """
    if block.end <= interval.start or block.start >= interval.end:
        return [interval]
    pieces: List[TimeInterval] = []
    if block.start > interval.start:
        pieces.append(TimeInterval(interval.start, block.start))
    if block.end < interval.end:
        pieces.append(TimeInterval(block.end, interval.end))
    return pieces


def subtract_intervals(
    intervals: Iterable[TimeInterval], blocks: Iterable[TimeInterval]
) -> List[TimeInterval]:
    """Remove every block from every interval, keeping the result ordered."""
    remaining = list(intervals)
    for block in blocks:
        next_remaining: List[TimeInterval] = []
        for interval in remaining:
            next_remaining.extend(subtract_interval(interval, block))
        remaining = next_remaining
    return sorted(remaining)


def _merge_minute_ranges(ranges: Iterable[tuple[int, int]]) -> List[tuple[int, int]]:
    merged: List[tuple[int, int]] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


class TenantCalendar:
    """
    Working templates and exceptions of one tenant, resolved per local date.

    Staff-specific templates for a weekday replace the tenant-wide ones for
    that staff member; a staff member with none for that weekday works the
    tenant-wide hours. Tenant-wide exceptions apply to everyone,
    staff-specific exceptions only to their owner.
    """

    def __init__(
        self,
        timezone: BaseTzInfo,
        templates: Sequence[WorkingHoursTemplate] = (),
        exceptions: Sequence[ExceptionBlock] = (),
    ) -> None:
        self.timezone = timezone
        self.templates = tuple(templates)
        self.exceptions = tuple(exceptions)

    def templates_for(self, weekday: int, staff_id: Optional[str]) -> List[WorkingHoursTemplate]:
        """Templates that govern ``staff_id`` on ``weekday`` after precedence."""
        for_day = [t for t in self.templates if t.day_of_week == weekday]
        if staff_id is not None:
            own = [t for t in for_day if t.scope == SpecificStaff(staff_id)]
            if own:
                return own
        return [t for t in for_day if isinstance(t.scope, AllStaff)]

    def exceptions_for(self, staff_id: Optional[str]) -> List[ExceptionBlock]:
        return [e for e in self.exceptions if e.scope.applies_to(staff_id)]

    def working_intervals(self, local_date: date, staff_id: Optional[str] = None) -> List[TimeInterval]:
        """Merged template hours for the date in UTC, before exceptions."""
        ranges = _merge_minute_ranges(
            (t.start_minute, t.end_minute)
            for t in self.templates_for(day_of_week(local_date), staff_id)
        )
        intervals: List[TimeInterval] = []
        for start_minute, end_minute in ranges:
            start = wall_clock_to_utc(local_date, start_minute, self.timezone)
            end = wall_clock_to_utc(local_date, end_minute, self.timezone)
            # A range living entirely inside a DST gap collapses to nothing
            if start < end:
                intervals.append(TimeInterval(start, end))
        return merge_intervals(intervals)

    def effective_working_intervals(
        self, local_date: date, staff_id: Optional[str] = None
    ) -> List[TimeInterval]:
        """Ordered UTC intervals the staff member (or the tenant) is bookable on the date."""
        intervals = self.working_intervals(local_date, staff_id)
        if not intervals:
            return []
        window = TimeInterval(intervals[0].start, intervals[-1].end)
        blocks = [
            block.interval
            for block in self.exceptions_for(staff_id)
            if block.interval.overlaps(window)
        ]
        return subtract_intervals(intervals, blocks)
