# backend/app/schemas/booking.py
"""
Booking schemas for BookBetter.

Requests carry a single absolute start instant; the end is always derived
from the service duration server-side.
"""

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_serializer, field_validator

from ..core.constants import MAX_CLIENT_NOTES_LENGTH, MAX_REASON_LENGTH
from ._strict_base import StrictModel, StrictRequestModel
from .base import as_utc


class ClientInfo(StrictRequestModel):
    name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=MAX_CLIENT_NOTES_LENGTH)


class BookingCreate(StrictRequestModel):
    """Reserve one slot. ``staff_id`` omitted means any available staff member."""

    tenant_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    staff_id: Optional[str] = None
    start_utc: datetime = Field(..., description="Slot start with an explicit UTC offset")
    client_info: ClientInfo = Field(default_factory=ClientInfo)

    @field_validator("start_utc")
    @classmethod
    def _require_offset(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("start_utc must include a timezone offset")
        return value


class BookingCancel(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class BookingResponse(StrictModel):
    id: str
    tenant_id: str
    service_id: str
    client_id: str
    staff_id: Optional[str] = None
    start_utc: datetime
    end_utc: datetime
    buffer_minutes: int
    status: str
    payment_status: str
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    client_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @field_serializer(
        "start_utc", "end_utc", "created_at", "confirmed_at", "completed_at", "cancelled_at"
    )
    def _serialize_utc(self, value: Optional[datetime]) -> Optional[str]:
        return as_utc(value).isoformat() if value is not None else None
