# backend/app/models/booking.py
"""
Booking model for BookBetter.

A booking pins a client to one staff resource for [start_utc, end_utc).
The service buffer is snapshotted onto the row at creation so the blocked
interval [start_utc, blocked_until_utc) never changes after the fact.
Reschedule = cancel + create; the time fields are immutable.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    DDL,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import ensure_utc
from ..database import Base

logger = logging.getLogger(__name__)

BOOKING_NO_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_resource"


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Reserved, awaiting payment capture
    CONFIRMED = "confirmed"  # Payment captured or no payment required
    CANCELLED = "cancelled"  # Terminal
    COMPLETED = "completed"  # Terminal, booking honored
    NO_SHOW = "no_show"  # Terminal, client absent


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
TERMINAL_BOOKING_STATUSES = (
    BookingStatus.CANCELLED.value,
    BookingStatus.COMPLETED.value,
    BookingStatus.NO_SHOW.value,
)


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    DEPOSIT = "deposit"
    PAID = "paid"
    REFUNDED = "refunded"


class Booking(Base):
    """
    Reservation of one staff resource for one service.

    resource_key is the staff user id, or ``tenant:<id>`` for businesses
    without staff accounts; every overlap guarantee is scoped to it.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    service_id = Column(String(26), ForeignKey("services.id"), nullable=False)
    client_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    staff_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    resource_key = Column(String(40), nullable=False)

    start_utc = Column(DateTime(timezone=True), nullable=False)
    end_utc = Column(DateTime(timezone=True), nullable=False)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    blocked_until_utc = Column(DateTime(timezone=True), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)

    client_name = Column(String(255), nullable=True)
    client_email = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    client_notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    tenant = relationship("Tenant")
    service = relationship("Service")
    client = relationship("User", foreign_keys=[client_id])
    staff = relationship("User", foreign_keys=[staff_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "payment_status IN ('unpaid', 'deposit', 'paid', 'refunded')",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint("start_utc < end_utc", name="ck_bookings_time_order"),
        CheckConstraint("end_utc <= blocked_until_utc", name="ck_bookings_blocked_after_end"),
        CheckConstraint("buffer_minutes >= 0", name="ck_bookings_buffer_non_negative"),
        Index("idx_bookings_resource_window", "resource_key", "start_utc", "blocked_until_utc"),
        Index("idx_bookings_tenant_start", "tenant_id", "start_utc"),
        Index("idx_bookings_client", "client_id"),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Derive the blocked interval from the buffer snapshot."""
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.PENDING.value
        if self.buffer_minutes is None:
            self.buffer_minutes = 0
        if self.blocked_until_utc is None and self.end_utc is not None:
            self.blocked_until_utc = self.end_utc + timedelta(minutes=self.buffer_minutes)

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: resource={self.resource_key} "
            f"{self.start_utc}-{self.end_utc} status={self.status}>"
        )

    @property
    def is_active(self) -> bool:
        """Only pending and confirmed bookings occupy calendar space."""
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def start_at(self) -> datetime:
        return ensure_utc(self.start_utc)

    @property
    def end_at(self) -> datetime:
        return ensure_utc(self.end_utc)

    @property
    def blocked_until(self) -> datetime:
        return ensure_utc(self.blocked_until_utc)

    def has_ended(self, now: Optional[datetime] = None) -> bool:
        return self.end_at <= (now or datetime.now(timezone.utc))


# Store-enforced backstop: raw booked intervals of active bookings may never
# overlap on a resource. Buffers are enforced under the per-resource lock.
_no_overlap_ddl = DDL(
    "CREATE EXTENSION IF NOT EXISTS btree_gist; "
    f"ALTER TABLE bookings ADD CONSTRAINT {BOOKING_NO_OVERLAP_CONSTRAINT} "
    "EXCLUDE USING gist ("
    "resource_key WITH =, "
    "tstzrange(start_utc, end_utc, '[)') WITH &&"
    ") WHERE (status IN ('pending', 'confirmed'))"
)

event.listen(
    Booking.__table__,
    "after_create",
    _no_overlap_ddl.execute_if(dialect="postgresql"),
)
