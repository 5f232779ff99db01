# backend/tests/conftest.py
"""
Pytest configuration for BookBetter.

Every test gets its own in-memory SQLite database built from the ORM
metadata, so tests never share rows and never need cleanup. Time is frozen
through the clock parameter services accept.
"""

import os

# Set testing mode BEFORE any app imports
os.environ["IS_TESTING"] = "true"
os.environ["CI"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("TEST_DATABASE_URL", None)
os.environ["RESERVATION_REDIS_LOCK_ENABLED"] = "false"
os.environ["JOBS_WORKER_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.api.dependencies import get_availability_service, get_booking_manager, get_db
from app.core.config import settings
from app.database import Base, build_engine
from app.main import app as fastapi_app
import app.models  # noqa: F401  (registers tables on Base.metadata)
from app.models.availability import AvailabilityException, WorkingHoursRule
from app.models.service import Service
from app.models.tenant import StaffAccount, Tenant
from app.models.user import User, UserRole
from app.services.availability_service import AvailabilityService
from app.services.booking_transaction_manager import BookingTransactionManager
from tests.helpers.clock import FROZEN_NOW

settings.is_testing = True

# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Clock
# ============================================================================


@pytest.fixture
def now() -> datetime:
    return FROZEN_NOW


@pytest.fixture
def clock(now) -> Callable[[], datetime]:
    return lambda: now


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_user(db: Session):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.CLIENT, name: Optional[str] = None, **kwargs) -> User:
        counter["n"] += 1
        user = User(
            role=role.value,
            name=name or f"{role.value.title()} {counter['n']}",
            email=kwargs.pop("email", f"{role.value}{counter['n']}@example.com"),
            **kwargs,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def tenant(db: Session) -> Tenant:
    entity = Tenant(name="Fade Studio", slug="fade-studio", timezone="America/New_York")
    db.add(entity)
    db.commit()
    return entity


@pytest.fixture
def make_staff(db: Session, make_user):
    """Staff accounts are ordered by created_at, so each gets a distinct one."""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(tenant: Tenant, name: Optional[str] = None) -> User:
        counter["n"] += 1
        user = make_user(UserRole.STAFF, name=name)
        db.add(
            StaffAccount(
                tenant_id=tenant.id,
                user_id=user.id,
                created_at=base + timedelta(minutes=counter["n"]),
            )
        )
        db.commit()
        return user

    return _make


@pytest.fixture
def staff(tenant: Tenant, make_staff) -> User:
    return make_staff(tenant, name="Sam Staff")


@pytest.fixture
def client_user(make_user) -> User:
    return make_user(UserRole.CLIENT, name="Casey Client")


@pytest.fixture
def make_service(db: Session):
    def _make(tenant: Tenant, duration: int = 30, buffer: int = 10, **kwargs) -> Service:
        service = Service(
            tenant_id=tenant.id,
            name=kwargs.pop("name", f"Cut {duration}"),
            duration_minutes=duration,
            buffer_minutes=buffer,
            advance_booking_days=kwargs.pop("advance_booking_days", 30),
            **kwargs,
        )
        db.add(service)
        db.commit()
        return service

    return _make


@pytest.fixture
def service(tenant: Tenant, make_service) -> Service:
    return make_service(tenant)


@pytest.fixture
def add_rule(db: Session):
    def _add(
        tenant: Tenant,
        day_of_week: int,
        start: str,
        end: str,
        staff_id: Optional[str] = None,
    ) -> WorkingHoursRule:
        rule = WorkingHoursRule(
            tenant_id=tenant.id,
            staff_id=staff_id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
        )
        db.add(rule)
        db.commit()
        return rule

    return _add


@pytest.fixture
def add_exception(db: Session):
    def _add(
        tenant: Tenant,
        start: datetime,
        end: datetime,
        staff_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> AvailabilityException:
        block = AvailabilityException(
            tenant_id=tenant.id, staff_id=staff_id, start_utc=start, end_utc=end, reason=reason
        )
        db.add(block)
        db.commit()
        return block

    return _add


@pytest.fixture
def monday_hours(tenant: Tenant, add_rule) -> WorkingHoursRule:
    """Tenant-wide Monday 09:00-11:00."""
    return add_rule(tenant, 1, "09:00", "11:00")


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def booking_manager(db: Session, clock) -> BookingTransactionManager:
    return BookingTransactionManager(db, clock=clock, sleep=lambda _seconds: None)


@pytest.fixture
def availability_service(db: Session, clock) -> AvailabilityService:
    return AvailabilityService(db, clock=clock)


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture
def api_client(db: Session, booking_manager, availability_service):
    """TestClient bound to the test database and the frozen clock."""

    def _get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = _get_db
    fastapi_app.dependency_overrides[get_booking_manager] = lambda: booking_manager
    fastapi_app.dependency_overrides[get_availability_service] = lambda: availability_service
    try:
        yield TestClient(fastapi_app)
    finally:
        fastapi_app.dependency_overrides.clear()
