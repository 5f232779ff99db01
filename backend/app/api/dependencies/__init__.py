# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import CurrentUser, get_current_user, require_staff
from .database import get_db
from .services import (
    get_availability_service,
    get_booking_manager,
    get_conflict_checker,
    get_slot_generator,
)

__all__ = [
    # Auth
    "CurrentUser",
    "get_current_user",
    "require_staff",
    # Database
    "get_db",
    # Services
    "get_availability_service",
    "get_booking_manager",
    "get_conflict_checker",
    "get_slot_generator",
]
