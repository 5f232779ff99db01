"""Shortcuts for building reservation requests in tests."""

from datetime import datetime
from typing import Optional

from app.models.booking import Booking
from app.services.booking_transaction_manager import (
    BookingTransactionManager,
    ReservationRequest,
)


def make_request(
    tenant_id: str,
    service_id: str,
    client_id: str,
    start_utc: datetime,
    staff_id: Optional[str] = None,
    **client_info,
) -> ReservationRequest:
    return ReservationRequest(
        tenant_id=tenant_id,
        service_id=service_id,
        client_id=client_id,
        start_utc=start_utc,
        staff_id=staff_id,
        **client_info,
    )


def reserve(
    manager: BookingTransactionManager,
    tenant,
    service,
    client,
    start_utc: datetime,
    staff=None,
    **client_info,
) -> Booking:
    return manager.reserve(
        make_request(
            tenant.id,
            service.id,
            client.id,
            start_utc,
            staff.id if staff is not None else None,
            **client_info,
        )
    )
