"""Booking domain events delivered through the background_jobs outbox."""

from app.events.booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
)
from app.events.publisher import EventPublisher

__all__ = [
    "BookingCreated",
    "BookingConfirmed",
    "BookingCancelled",
    "BookingCompleted",
    "EventPublisher",
]
