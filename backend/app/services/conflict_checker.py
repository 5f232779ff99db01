# backend/app/services/conflict_checker.py
"""
Conflict Checker Service for BookBetter

Decides whether candidate windows collide with active (pending or confirmed)
bookings on a staff resource, applying the configured buffer policy. Pending
bookings block exactly like confirmed ones.
"""

from datetime import datetime, timedelta
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException
from ..core.timezone_utils import ensure_utc
from ..domain.conflicts import BookedInterval, BufferPolicy, filter_available, find_conflicts
from ..domain.slots import AvailabilitySlot
from ..models.booking import Booking
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService
from .slot_generator import StaffResource, resolve_resources

logger = logging.getLogger(__name__)


def to_booked_interval(booking: Booking) -> BookedInterval:
    return BookedInterval(
        start=ensure_utc(booking.start_utc),
        end=ensure_utc(booking.end_utc),
        buffer_minutes=int(booking.buffer_minutes or 0),
        booking_id=booking.id,
    )


class ConflictChecker(BaseService):
    """
    Service for checking booking conflicts.

    All reads go to the store; nothing is cached between calls.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[ConflictCheckerRepository] = None,
        policy: Optional[BufferPolicy] = None,
    ):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)
        self._policy = policy

    @property
    def policy(self) -> BufferPolicy:
        return self._policy or BufferPolicy(settings.buffer_policy)

    def booked_intervals(
        self,
        resource_keys: Sequence[str],
        window_start: datetime,
        window_end: datetime,
    ) -> Dict[str, List[BookedInterval]]:
        """Active bookings per resource whose blocked span touches the window."""
        grouped = self.repository.get_active_bookings_by_resource(
            resource_keys, window_start, window_end
        )
        return {key: [to_booked_interval(b) for b in rows] for key, rows in grouped.items()}

    def conflicts_for_resource(
        self,
        resource_key: str,
        candidate_start: datetime,
        candidate_end: datetime,
        buffer_minutes: int,
    ) -> List[BookedInterval]:
        """Bookings on one resource that the candidate would collide with."""
        rows = self.repository.get_active_bookings_in_window(
            [resource_key],
            candidate_start,
            candidate_end + timedelta(minutes=buffer_minutes),
        )
        return find_conflicts(
            candidate_start,
            candidate_end,
            buffer_minutes,
            [to_booked_interval(b) for b in rows],
            self.policy,
        )

    def free_resources(
        self,
        resources: Iterable[StaffResource],
        candidate_start: datetime,
        candidate_end: datetime,
        buffer_minutes: int,
    ) -> List[StaffResource]:
        return [
            resource
            for resource in resources
            if not self.conflicts_for_resource(
                resource.resource_key, candidate_start, candidate_end, buffer_minutes
            )
        ]

    @BaseService.measure_operation("is_available")
    def is_available(
        self,
        tenant_id: str,
        staff_id: Optional[str],
        candidate_start: datetime,
        candidate_end: datetime,
        buffer_minutes: int,
    ) -> bool:
        """
        True when at least one targeted resource has no conflict.

        ``staff_id=None`` checks every active staff member of the tenant (or
        the tenant itself when it has no staff).

        Raises:
            NotFoundException: tenant or staff member does not resolve
        """
        candidate_start = ensure_utc(candidate_start)
        candidate_end = ensure_utc(candidate_end)
        tenant_repository = RepositoryFactory.create_tenant_repository(self.db)
        if not tenant_repository.get_active(tenant_id):
            raise NotFoundException(f"Tenant {tenant_id} not found", code="TENANT_NOT_FOUND")
        resources = resolve_resources(tenant_repository, tenant_id, staff_id)
        return bool(self.free_resources(resources, candidate_start, candidate_end, buffer_minutes))

    def filter_available(
        self,
        slots: Iterable[AvailabilitySlot],
        existing_bookings: Iterable[BookedInterval],
        buffer_minutes: int,
    ) -> Iterator[AvailabilitySlot]:
        """Correct the available flag of slots of one resource against its bookings."""
        return filter_available(slots, existing_bookings, buffer_minutes, self.policy)
