# backend/app/models/tenant.py
"""
Tenant models for BookBetter.

A tenant is a registered business; it is the multi-tenancy boundary for
services, staff, working hours and bookings.

Classes:
    Tenant: The business account
    StaffRole: Enum of roles a staff member holds inside a tenant
    StaffAccount: Membership of a user in a tenant's staff
"""

from enum import Enum
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
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.constants import TENANT_RESOURCE_PREFIX
from ..database import Base

logger = logging.getLogger(__name__)


def tenant_resource_key(tenant_id: str) -> str:
    return f"{TENANT_RESOURCE_PREFIX}{tenant_id}"


class StaffRole(str, Enum):
    OWNER = "owner"
    MANAGER = "manager"
    STAFF = "staff"


class Tenant(Base):
    """
    Business account that owns services, staff and calendars.

    Attributes:
        timezone: IANA zone in which working-hour templates are interpreted
        bookings_quota: Maximum active upcoming bookings for the plan (0 = unlimited)
    """

    __tablename__ = "tenants"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    timezone = Column(String(100), nullable=False, default="America/New_York")
    bookings_quota = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    services = relationship("Service", back_populates="tenant", cascade="all, delete-orphan")
    staff_accounts = relationship(
        "StaffAccount", back_populates="tenant", cascade="all, delete-orphan"
    )

    __table_args__ = (CheckConstraint("bookings_quota >= 0", name="ck_tenants_quota"),)

    @property
    def resource_key(self) -> str:
        """Calendar resource used when the business has no staff accounts."""
        return tenant_resource_key(self.id)

    def __repr__(self) -> str:
        return f"<Tenant {self.slug} tz={self.timezone}>"


class StaffAccount(Base):
    """A user working for a tenant. The staff resource id is the user id."""

    __tablename__ = "staff_accounts"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(10), nullable=False, default=StaffRole.STAFF.value)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tenant = relationship("Tenant", back_populates="staff_accounts")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_staff_accounts_tenant_user"),
        CheckConstraint("role IN ('owner', 'manager', 'staff')", name="ck_staff_accounts_role"),
        Index("idx_staff_accounts_tenant", "tenant_id"),
    )

    def __repr__(self) -> str:
        return f"<StaffAccount tenant={self.tenant_id} user={self.user_id} role={self.role}>"
