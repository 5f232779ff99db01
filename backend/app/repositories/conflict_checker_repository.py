# backend/app/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for BookBetter

Reads the active bookings that can collide with a window on one or more staff
resources. A booking occupies [start_utc, blocked_until_utc); callers widen
the window end by the candidate's own buffer when the policy needs it.
"""

from collections import defaultdict
from datetime import datetime
import logging
from typing import Dict, List, Sequence

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(BaseRepository[Booking]):
    """Repository for conflict checking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def get_active_bookings_in_window(
        self,
        resource_keys: Sequence[str],
        window_start: datetime,
        window_end: datetime,
    ) -> List[Booking]:
        """
        Active bookings whose blocked span touches [window_start, window_end).

        OperationalError propagates so reservation retries can classify it.
        """
        if not resource_keys:
            return []
        try:
            return (
                self.db.query(Booking)
                .filter(
                    Booking.resource_key.in_(list(resource_keys)),
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    Booking.start_utc < window_end,
                    Booking.blocked_until_utc > window_start,
                )
                .order_by(Booking.start_utc)
                .all()
            )
        except OperationalError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting bookings for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get conflict bookings: {str(e)}")

    def get_active_bookings_by_resource(
        self, resource_keys: Sequence[str], window_start: datetime, window_end: datetime
    ) -> Dict[str, List[Booking]]:
        """Same as ``get_active_bookings_in_window`` grouped by resource key."""
        grouped: Dict[str, List[Booking]] = defaultdict(list)
        for booking in self.get_active_bookings_in_window(resource_keys, window_start, window_end):
            grouped[booking.resource_key].append(booking)
        return dict(grouped)
