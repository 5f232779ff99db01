# backend/app/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingTransactionManager.

Endpoints:
    POST / - Reserve a slot (201, 409 SlotTaken, 503 Transient)
    GET /{booking_id} - Booking details
    POST /{booking_id}/confirm - pending -> confirmed
    POST /{booking_id}/cancel - pending/confirmed -> cancelled
    POST /{booking_id}/complete - confirmed -> completed (after end)
    POST /{booking_id}/no-show - confirmed -> no_show (after end)
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.params import Path

from ...api.dependencies import CurrentUser, get_booking_manager, get_current_user, require_staff
from ...core.exceptions import DomainException
from ...models.booking import Booking
from ...schemas.booking import BookingCancel, BookingCreate, BookingResponse
from ...services.booking_transaction_manager import (
    BookingTransactionManager,
    ReservationRequest,
)

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _to_response(booking: Booking) -> BookingResponse:
    return BookingResponse.model_validate(booking)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate = Body(...),
    current_user: CurrentUser = Depends(get_current_user),
    booking_manager: BookingTransactionManager = Depends(get_booking_manager),
) -> BookingResponse:
    """
    Reserve one slot for the calling client.

    The end time is derived from the service duration. On a lost race the
    response is 409 with code SlotTaken; clients should refresh availability.
    """
    client = booking_data.client_info
    request = ReservationRequest(
        tenant_id=booking_data.tenant_id,
        service_id=booking_data.service_id,
        client_id=current_user.id,
        start_utc=booking_data.start_utc,
        staff_id=booking_data.staff_id,
        client_name=client.name,
        client_email=str(client.email) if client.email else None,
        client_phone=client.phone,
        client_notes=client.notes,
    )
    try:
        booking = await asyncio.to_thread(booking_manager.reserve, request)
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(get_current_user),
    booking_manager: BookingTransactionManager = Depends(get_booking_manager),
) -> BookingResponse:
    """Booking details; clients may only read their own bookings."""
    try:
        booking = await asyncio.to_thread(booking_manager.get_booking, booking_id)
        if not current_user.is_staff:
            booking_manager.ensure_can_cancel(booking, current_user.id, current_user.role)
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(require_staff),
    booking_manager: BookingTransactionManager = Depends(get_booking_manager),
) -> BookingResponse:
    """Confirm a pending booking once payment has been captured."""
    try:
        booking = await asyncio.to_thread(booking_manager.mark_confirmed, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    cancel_data: Optional[BookingCancel] = Body(None),
    current_user: CurrentUser = Depends(get_current_user),
    booking_manager: BookingTransactionManager = Depends(get_booking_manager),
) -> BookingResponse:
    """Cancel a booking. Clients may cancel their own; staff may cancel any."""
    reason = cancel_data.reason if cancel_data else None
    try:
        existing = await asyncio.to_thread(booking_manager.get_booking, booking_id)
        booking_manager.ensure_can_cancel(existing, current_user.id, current_user.role)
        booking = await asyncio.to_thread(
            booking_manager.mark_cancelled,
            booking_id,
            reason=reason,
            cancelled_by=current_user.id,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(require_staff),
    booking_manager: BookingTransactionManager = Depends(get_booking_manager),
) -> BookingResponse:
    """Mark a confirmed booking completed after its end time."""
    try:
        booking = await asyncio.to_thread(booking_manager.mark_completed, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_booking_no_show(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(require_staff),
    booking_manager: BookingTransactionManager = Depends(get_booking_manager),
) -> BookingResponse:
    """Mark a confirmed booking as a no-show after its end time."""
    try:
        booking = await asyncio.to_thread(booking_manager.mark_no_show, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)
