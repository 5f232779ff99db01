"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking is reserved (status pending)."""

    booking_id: str
    tenant_id: str
    client_id: str
    staff_id: Optional[str]
    start_utc: datetime
    end_utc: datetime
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingConfirmed:
    """Fired after payment (or no-payment) confirmation."""

    booking_id: str
    payment_status: str
    confirmed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled."""

    booking_id: str
    cancelled_by: Optional[str]
    cancelled_at: datetime
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCompleted:
    """Fired after a booking reaches completed or no_show."""

    booking_id: str
    outcome: str  # 'completed' or 'no_show'
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
