# backend/app/models/availability.py
"""
Availability models for BookBetter.

This module defines the recurring working-hour templates and the one-off
exceptions that subtract from them.

Classes:
    WorkingHoursRule: Weekly wall-clock window, tenant-wide or per staff
    AvailabilityException: Blocked UTC interval (time off, holds, closures)
"""

import logging
from typing import Any

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
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
import ulid

from ..core.constants import MINUTES_PER_DAY
from ..database import Base

logger = logging.getLogger(__name__)


def parse_wall_clock(value: str) -> int:
    """
    Parse an ``HH:MM`` wall-clock string into minutes of day.

    ``24:00`` is accepted as the end of the day.

    Raises:
        ValueError: If the string is not a valid wall-clock time
    """
    try:
        hour_str, minute_str = value.strip().split(":")
        hour, minute = int(hour_str), int(minute_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time format: {value!r}. Expected HH:MM.")
    if not (0 <= minute < 60) or not (0 <= hour <= 24):
        raise ValueError(f"Invalid time of day: {value!r}")
    minutes = hour * 60 + minute
    if minutes > MINUTES_PER_DAY:
        raise ValueError(f"Invalid time of day: {value!r}")
    return minutes


class WorkingHoursRule(Base):
    """
    Recurring weekly working window.

    staff_id NULL means the rule applies to all staff of the tenant.
    Times are tenant-local wall-clock ``HH:MM`` strings.
    """

    __tablename__ = "availability_templates"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    staff_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_templates_dow"),
        CheckConstraint("start_time < end_time", name="ck_availability_templates_order"),
        Index("idx_availability_templates_tenant_day", "tenant_id", "day_of_week"),
    )

    @validates("start_time", "end_time")
    def _validate_wall_clock(self, key: str, value: str) -> str:
        parse_wall_clock(value)
        return value.strip()

    @property
    def start_minute(self) -> int:
        return parse_wall_clock(self.start_time)

    @property
    def end_minute(self) -> int:
        return parse_wall_clock(self.end_time)

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if self.start_time and self.end_time and self.start_minute >= self.end_minute:
            raise ValueError(
                f"Working hours must start before they end ({self.start_time}-{self.end_time})"
            )

    def __repr__(self) -> str:
        scope = self.staff_id or "all staff"
        return f"<WorkingHoursRule dow={self.day_of_week} {self.start_time}-{self.end_time} {scope}>"


class AvailabilityException(Base):
    """Blocked UTC interval; staff_id NULL blocks every staff member of the tenant."""

    __tablename__ = "availability_exceptions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    staff_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    start_utc = Column(DateTime(timezone=True), nullable=False)
    end_utc = Column(DateTime(timezone=True), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("start_utc < end_utc", name="ck_availability_exceptions_order"),
        Index("idx_availability_exceptions_tenant_time", "tenant_id", "start_utc"),
    )

    def __repr__(self) -> str:
        return f"<AvailabilityException {self.start_utc}-{self.end_utc} {self.reason or ''}>"
