# backend/app/models/user.py
"""
User model for BookBetter.

Users are owned by the authentication provider; this table mirrors the
identity fields the booking core needs (role and display/contact data).

Classes:
    UserRole: Enum defining the possible user roles
    User: Identity record for clients, pros and staff
"""

from enum import Enum
import logging

from sqlalchemy import CheckConstraint, Column, DateTime, String
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    """Roles issued by the auth provider."""

    CLIENT = "client"
    PRO = "pro"
    STAFF = "staff"


class User(Base):
    """
    Identity record for anyone who books or is booked.

    Attributes:
        id: Primary key (ULID)
        role: client, pro or staff
        name: Display name
        email: Unique email address
        phone: Optional phone number
        timezone: Preferred IANA timezone for display
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    role = Column(String(10), nullable=False, default=UserRole.CLIENT.value, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    timezone = Column(String(100), nullable=False, default="America/New_York")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('client', 'pro', 'staff')", name="ck_users_role"),
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
