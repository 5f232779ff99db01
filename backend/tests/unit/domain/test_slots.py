from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
import pytz

from app.domain.calendar import ExceptionBlock, TenantCalendar, TimeInterval, WorkingHoursTemplate
from app.domain.slots import SlotStream, candidate_starts, generate_slots, iter_dates

NY = pytz.timezone("America/New_York")
MONDAY = date(2027, 1, 4)


def _utc(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def _minutes(n: int) -> timedelta:
    return timedelta(minutes=n)


@pytest.fixture
def calendar() -> TenantCalendar:
    # Monday 09:00-11:00 New York = 14:00-16:00 UTC
    return TenantCalendar(NY, [WorkingHoursTemplate(1, 9 * 60, 11 * 60)])


class TestCandidateStarts:
    def test_stride_equals_duration_and_slot_must_fit(self) -> None:
        starts = list(candidate_starts(TimeInterval(_utc(14), _utc(15, 45)), _minutes(30)))
        assert starts == [_utc(14), _utc(14, 30), _utc(15)]

    def test_interval_shorter_than_duration_yields_nothing(self) -> None:
        assert list(candidate_starts(TimeInterval(_utc(14), _utc(14, 20)), _minutes(30))) == []


class TestGenerateSlots:
    def test_monday_slots(self, calendar: TenantCalendar) -> None:
        slots = list(generate_slots(calendar, 30, MONDAY, MONDAY, staff_id="s1"))

        assert [s.start_utc for s in slots] == [_utc(14), _utc(14, 30), _utc(15), _utc(15, 30)]
        assert all(s.end_utc - s.start_utc == _minutes(30) for s in slots)
        assert all(s.available and s.staff_id == "s1" for s in slots)

    def test_slots_are_ordered_across_days(self, calendar: TenantCalendar) -> None:
        slots = list(generate_slots(calendar, 60, MONDAY, date(2027, 1, 18)))

        assert len(slots) == 6
        assert slots == sorted(slots)

    def test_inverted_range_is_empty(self, calendar: TenantCalendar) -> None:
        assert list(generate_slots(calendar, 30, date(2027, 1, 5), MONDAY)) == []

    def test_non_positive_duration_rejected(self, calendar: TenantCalendar) -> None:
        with pytest.raises(ValueError):
            list(generate_slots(calendar, 0, MONDAY, MONDAY))

    def test_booking_horizon_caps_range(self, calendar: TenantCalendar) -> None:
        slots = list(
            generate_slots(
                calendar, 60, MONDAY, date(2027, 1, 18), last_bookable_date=date(2027, 1, 10)
            )
        )
        assert {s.start_utc.date() for s in slots} == {MONDAY}

    def test_exception_removes_slots(self) -> None:
        calendar = TenantCalendar(
            NY,
            [WorkingHoursTemplate(1, 9 * 60, 11 * 60)],
            [ExceptionBlock(_utc(14, 30), _utc(15, 10))],
        )
        starts = [s.start_utc for s in generate_slots(calendar, 30, MONDAY, MONDAY)]

        # Slots restart at the end of the exception, not on the original grid
        assert starts == [_utc(14), _utc(15, 10)]


class TestSlotStream:
    def test_restartable(self, calendar: TenantCalendar) -> None:
        stream = SlotStream(calendar, 30, MONDAY, date(2027, 1, 11))

        first = list(stream)
        second = list(stream)

        assert first == second
        assert len(first) == 8

    def test_lazy_iteration(self, calendar: TenantCalendar) -> None:
        # A year-long range must not be materialized to read the first slot
        stream = iter(SlotStream(calendar, 30, MONDAY, date(2028, 1, 4)))
        assert next(stream).start_utc == _utc(14)


def test_iter_dates_inclusive() -> None:
    assert list(iter_dates(MONDAY, date(2027, 1, 6))) == [
        MONDAY,
        date(2027, 1, 5),
        date(2027, 1, 6),
    ]
