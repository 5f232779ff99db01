"""
Buffer-aware overlap policy between candidate slots and active bookings.

symmetric:
    candidate_start < B.end + B.buffer AND B.start < candidate_end + candidate_buffer
existing_only:
    candidate_start < B.end + B.buffer AND B.start < candidate_end
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Iterator, List, Optional

from .slots import AvailabilitySlot


class BufferPolicy(str, Enum):
    SYMMETRIC = "symmetric"
    EXISTING_ONLY = "existing_only"


@dataclass(frozen=True)
class BookedInterval:
    """An active booking as seen by the conflict policy."""

    start: datetime
    end: datetime
    buffer_minutes: int = 0
    booking_id: Optional[str] = None

    @property
    def blocked_until(self) -> datetime:
        return self.end + timedelta(minutes=self.buffer_minutes)


def conflicts_with(
    candidate_start: datetime,
    candidate_end: datetime,
    candidate_buffer_minutes: int,
    booked: BookedInterval,
    policy: BufferPolicy = BufferPolicy.SYMMETRIC,
) -> bool:
    """True when the candidate window collides with ``booked`` under ``policy``."""
    if candidate_start >= booked.blocked_until:
        return False
    if policy is BufferPolicy.SYMMETRIC:
        return booked.start < candidate_end + timedelta(minutes=candidate_buffer_minutes)
    return booked.start < candidate_end


def find_conflicts(
    candidate_start: datetime,
    candidate_end: datetime,
    candidate_buffer_minutes: int,
    booked: Iterable[BookedInterval],
    policy: BufferPolicy = BufferPolicy.SYMMETRIC,
) -> List[BookedInterval]:
    return [
        b
        for b in booked
        if conflicts_with(candidate_start, candidate_end, candidate_buffer_minutes, b, policy)
    ]


def filter_available(
    slots: Iterable[AvailabilitySlot],
    booked: Iterable[BookedInterval],
    buffer_minutes: int,
    policy: BufferPolicy = BufferPolicy.SYMMETRIC,
) -> Iterator[AvailabilitySlot]:
    """
    Re-flag each slot against the given bookings of a single staff resource.

    Slots are never dropped; a conflicting slot is yielded with
    ``available=False``.
    """
    booked = list(booked)
    for slot in slots:
        clash = any(
            conflicts_with(slot.start_utc, slot.end_utc, buffer_minutes, b, policy) for b in booked
        )
        yield slot.with_availability(slot.available and not clash)
