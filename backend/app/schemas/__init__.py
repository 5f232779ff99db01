# backend/app/schemas/__init__.py
"""Pydantic request/response schemas for the BookBetter API."""

from .availability import AvailabilityResponse, AvailabilitySlotResponse
from .booking import BookingCancel, BookingCreate, BookingResponse, ClientInfo
from .health import HealthResponse

__all__ = [
    "AvailabilityResponse",
    "AvailabilitySlotResponse",
    "BookingCancel",
    "BookingCreate",
    "BookingResponse",
    "ClientInfo",
    "HealthResponse",
]
