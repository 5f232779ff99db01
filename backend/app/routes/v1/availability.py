# backend/app/routes/v1/availability.py
"""
Availability routes - API v1

Public, read-only slot listing under /api/v1/availability. Results are
computed fresh on every request and never cached.

Endpoints:
    GET / - Slots for a tenant/service (and optional staff) over local dates
"""

import asyncio
from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import get_availability_service
from ...core.exceptions import DomainException
from ...schemas.availability import AvailabilityResponse, AvailabilitySlotResponse
from ...schemas.base import as_utc
from ...services.availability_service import AvailabilityQuery, AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("", response_model=AvailabilityResponse)
async def get_availability(
    tenant_id: str = Query(..., min_length=1),
    service_id: str = Query(..., min_length=1),
    staff_id: Optional[str] = Query(None),
    from_date: date = Query(..., alias="from", description="First local date (inclusive)"),
    to_date: date = Query(..., alias="to", description="Last local date (inclusive)"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """
    List bookable slots.

    Dates are interpreted in the tenant's timezone; slot bounds are returned
    in UTC. Without ``staff_id`` the slots of all staff are merged and a slot
    is available when any staff member is free.
    """
    query = AvailabilityQuery(
        tenant_id=tenant_id,
        service_id=service_id,
        staff_id=staff_id,
        from_date=from_date,
        to_date=to_date,
    )
    try:
        result = await asyncio.to_thread(availability_service.get_availability, query)
    except DomainException as e:
        handle_domain_exception(e)

    return AvailabilityResponse(
        tenant_id=result.tenant_id,
        service_id=result.service_id,
        staff_id=result.staff_id,
        timezone=result.timezone,
        slots=[
            AvailabilitySlotResponse(
                start_utc=as_utc(slot.start_utc),
                end_utc=as_utc(slot.end_utc),
                available=slot.available,
                staff_id=slot.staff_id,
            )
            for slot in result.slots
        ],
    )
