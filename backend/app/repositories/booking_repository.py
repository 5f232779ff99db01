# backend/app/repositories/booking_repository.py
"""
Booking Repository for BookBetter

Data access for bookings. Writes go through ``insert`` which deliberately
lets IntegrityError and OperationalError escape unwrapped: the transaction
manager needs the raw driver error to tell a genuine slot conflict from
transient contention.
"""

from datetime import datetime
import hashlib
import logging
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def resource_lock_key(resource_key: str) -> int:
    """Stable signed 64-bit key for pg_advisory_xact_lock."""
    digest = hashlib.blake2b(resource_key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    # Concurrency primitives

    def lock_resource(self, resource_key: str) -> None:
        """
        Serialize writers for one staff resource until the transaction ends.

        PostgreSQL uses a transaction-scoped advisory lock. SQLite sessions
        already hold the database write lock from BEGIN IMMEDIATE, so there is
        nothing more to take.
        """
        if self.dialect_name != "postgresql":
            return
        self.db.execute(
            text("SELECT pg_advisory_xact_lock(:lock_key)"),
            {"lock_key": resource_lock_key(resource_key)},
        )

    def insert(self, **kwargs: Any) -> Booking:
        """Add and flush a booking; store errors propagate as-is."""
        booking = Booking(**kwargs)
        self.db.add(booking)
        try:
            self.db.flush()
        except (IntegrityError, OperationalError):
            self.logger.info(
                "Booking insert rejected by store",
                extra={"resource_key": kwargs.get("resource_key")},
            )
            raise
        return booking

    def get_for_update(self, booking_id: str) -> Optional[Booking]:
        """Load a booking with a row lock (no-op on SQLite) for a status change."""
        try:
            return (
                self.db.query(Booking)
                .filter(Booking.id == booking_id)
                .with_for_update()
                .first()
            )
        except OperationalError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking: {str(e)}")

    # Queries

    def get_booking_with_details(self, booking_id: str) -> Optional[Booking]:
        return self.get_by_id(booking_id, load_relationships=True)

    def count_active_future(self, tenant_id: str, now: datetime) -> int:
        """Active bookings of a tenant that have not started yet (quota usage)."""
        try:
            return (
                self.db.query(func.count(Booking.id))
                .filter(
                    Booking.tenant_id == tenant_id,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    Booking.start_utc > now,
                )
                .scalar()
                or 0
            )
        except OperationalError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting tenant bookings: {str(e)}")
            raise RepositoryException(f"Failed to count bookings: {str(e)}")

    def count_active_by_resource(
        self, resource_keys: Sequence[str], range_start: datetime, range_end: datetime
    ) -> Dict[str, int]:
        """Active bookings per resource starting inside [range_start, range_end)."""
        if not resource_keys:
            return {}
        try:
            rows = (
                self.db.query(Booking.resource_key, func.count(Booking.id))
                .filter(
                    Booking.resource_key.in_(list(resource_keys)),
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    Booking.start_utc >= range_start,
                    Booking.start_utc < range_end,
                )
                .group_by(Booking.resource_key)
                .all()
            )
            return {key: count for key, count in rows}
        except OperationalError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting bookings per resource: {str(e)}")
            raise RepositoryException(f"Failed to count bookings: {str(e)}")

    # Helper method overrides

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Booking.service), joinedload(Booking.tenant))
