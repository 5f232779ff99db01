"""
Database models for BookBetter.

This module exports all SQLAlchemy models used in the application.
The models are organized by functionality:
- Identity (users) and tenancy (tenants, staff accounts)
- Services offered by tenants
- Availability templates and exceptions
- Bookings and their notifications
- Background job outbox
"""

from .availability import AvailabilityException, WorkingHoursRule
from .background_job import BackgroundJob
from .booking import (
    ACTIVE_BOOKING_STATUSES,
    TERMINAL_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    PaymentStatus,
)
from .notification import Notification, NotificationPurpose
from .service import Service
from .tenant import StaffAccount, StaffRole, Tenant
from .user import User, UserRole

__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "TERMINAL_BOOKING_STATUSES",
    "AvailabilityException",
    "BackgroundJob",
    "Booking",
    "BookingStatus",
    "Notification",
    "NotificationPurpose",
    "PaymentStatus",
    "Service",
    "StaffAccount",
    "StaffRole",
    "Tenant",
    "User",
    "UserRole",
    "WorkingHoursRule",
]
