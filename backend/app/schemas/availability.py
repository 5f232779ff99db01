# backend/app/schemas/availability.py
"""Availability query responses."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ._strict_base import StrictModel


class AvailabilitySlotResponse(StrictModel):
    start_utc: datetime
    end_utc: datetime
    available: bool
    staff_id: Optional[str] = None


class AvailabilityResponse(StrictModel):
    """Ordered slots for a tenant/service (and optional staff) over a local date range."""

    tenant_id: str
    service_id: str
    staff_id: Optional[str] = None
    timezone: str = Field(..., description="IANA zone the date range was interpreted in")
    slots: List[AvailabilitySlotResponse] = Field(default_factory=list)
