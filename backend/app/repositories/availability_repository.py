# backend/app/repositories/availability_repository.py
"""
Availability Repository for BookBetter

Loads the raw calendar inputs of a tenant: working-hour templates and
exceptions. Interpretation (precedence, timezone conversion, subtraction)
lives in ``app.domain.calendar``.
"""

from datetime import datetime
import logging
from typing import List

from sqlalchemy.orm import Session

from ..models.availability import AvailabilityException, WorkingHoursRule
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[WorkingHoursRule]):
    def __init__(self, db: Session):
        super().__init__(db, WorkingHoursRule)

    def get_active_rules(self, tenant_id: str) -> List[WorkingHoursRule]:
        """All active templates of a tenant, tenant-wide and staff-specific."""
        query = (
            self.db.query(WorkingHoursRule)
            .filter(
                WorkingHoursRule.tenant_id == tenant_id,
                WorkingHoursRule.active.is_(True),
            )
            .order_by(WorkingHoursRule.day_of_week, WorkingHoursRule.start_time)
        )
        return self._execute_query(query)

    def get_exceptions_in_range(
        self, tenant_id: str, range_start: datetime, range_end: datetime
    ) -> List[AvailabilityException]:
        """Exceptions overlapping [range_start, range_end) for any staff of the tenant."""
        query = (
            self.db.query(AvailabilityException)
            .filter(
                AvailabilityException.tenant_id == tenant_id,
                AvailabilityException.start_utc < range_end,
                AvailabilityException.end_utc > range_start,
            )
            .order_by(AvailabilityException.start_utc)
        )
        return self._execute_query(query)
