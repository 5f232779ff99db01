# backend/app/models/notification.py
"""Notification requests recorded for the delivery collaborator."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.sql import func
import ulid

from ..database import Base


class NotificationPurpose(str, Enum):
    CONFIRMATION = "confirmation"
    CANCELLATION = "cancellation"
    COMPLETION = "completion"
    REMINDER_24H = "reminder_24h"
    REMINDER_2H = "reminder_2h"


class Notification(Base):
    """One outbound message requested for a booking state change."""

    __tablename__ = "notifications"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=True)
    type = Column(String(10), nullable=False, default="email")
    purpose = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="queued")
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_notifications_booking", "booking_id"),
        Index("idx_notifications_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Notification {self.purpose} -> {self.recipient} ({self.status})>"
