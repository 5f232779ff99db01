# backend/app/models/service.py
"""
Service model for BookBetter.

A service defines how long a slot lasts and the idle buffer enforced after
it before the same staff resource can be booked again.
"""

import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class Service(Base):
    """
    Bookable offering of a tenant.

    Attributes:
        duration_minutes: Length of every slot and booking for this service
        buffer_minutes: Idle time required after a booking of this service
        advance_booking_days: How far ahead (in tenant-local days) clients may book
        deposit_cents: Deposit collected at booking when full payment is not required
    """

    __tablename__ = "services"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    advance_booking_days = Column(Integer, nullable=False, default=30)
    deposit_cents = Column(Integer, nullable=True)
    full_pay_required = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    tenant = relationship("Tenant", back_populates="services")

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),
        CheckConstraint("buffer_minutes >= 0", name="ck_services_buffer_non_negative"),
        CheckConstraint("advance_booking_days >= 0", name="ck_services_advance_non_negative"),
        CheckConstraint("price_cents >= 0", name="ck_services_price_non_negative"),
        Index("idx_services_tenant_active", "tenant_id", "active"),
    )

    @property
    def takes_deposit(self) -> bool:
        return bool(self.deposit_cents) and not self.full_pay_required

    def __repr__(self) -> str:
        return (
            f"<Service {self.name}: {self.duration_minutes}min "
            f"+{self.buffer_minutes}min buffer>"
        )
