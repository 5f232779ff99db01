# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for BookBetter

Key Components:
- BaseRepository: Foundation for all repositories with generic CRUD operations
- RepositoryFactory: Factory for creating repository instances
- BookingRepository / ConflictCheckerRepository: booking writes and overlap reads
- AvailabilityRepository: working-hour templates and exceptions

Usage:
    from app.repositories import RepositoryFactory

    repository = RepositoryFactory.create_booking_repository(db)
"""

from .availability_repository import AvailabilityRepository
from .background_job_repository import BackgroundJobRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .conflict_checker_repository import ConflictCheckerRepository
from .factory import RepositoryFactory
from .notification_repository import NotificationRepository
from .service_repository import ServiceRepository
from .tenant_repository import TenantRepository
from .user_repository import UserRepository

__all__ = [
    "AvailabilityRepository",
    "BackgroundJobRepository",
    "BaseRepository",
    "BookingRepository",
    "ConflictCheckerRepository",
    "NotificationRepository",
    "RepositoryFactory",
    "ServiceRepository",
    "TenantRepository",
    "UserRepository",
]
