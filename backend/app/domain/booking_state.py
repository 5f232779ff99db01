"""Booking lifecycle transitions."""

from __future__ import annotations

from typing import Dict, FrozenSet

from ..models.booking import BookingStatus

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

# Transitions that only make sense once the appointment is over
REQUIRES_ELAPSED_END: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
)


def can_transition(current: str, target: str) -> bool:
    try:
        return BookingStatus(target) in ALLOWED_TRANSITIONS[BookingStatus(current)]
    except ValueError:
        return False
