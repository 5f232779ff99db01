from __future__ import annotations

from datetime import timedelta

import pytest

from app.core.exceptions import NotFoundException
from app.models.tenant import Tenant
from app.services.conflict_checker import ConflictChecker
from tests.helpers.booking import reserve
from tests.helpers.clock import MONDAY, ny_local


@pytest.fixture
def checker(db) -> ConflictChecker:
    return ConflictChecker(db)


@pytest.fixture
def crew(monday_hours, make_staff, tenant):
    return make_staff(tenant, name="Alex"), make_staff(tenant, name="Blair")


def _window(hour: int, minute: int = 0):
    start = ny_local(MONDAY, hour, minute)
    return start, start + timedelta(minutes=30)


class TestIsAvailable:
    """Alex holds 09:00-09:30 (plus a 10 minute buffer); Blair is free."""

    @pytest.fixture(autouse=True)
    def _alex_booked(self, crew, booking_manager, tenant, service, client_user):
        alex, _ = crew
        reserve(booking_manager, tenant, service, client_user, ny_local(MONDAY, 9, 0), alex)

    def test_named_staff(self, checker, tenant, crew) -> None:
        alex, blair = crew

        assert not checker.is_available(tenant.id, alex.id, *_window(9, 0), 10)
        assert checker.is_available(tenant.id, blair.id, *_window(9, 0), 10)

    def test_buffer_blocks_named_staff(self, checker, tenant, crew) -> None:
        alex, _ = crew

        assert not checker.is_available(tenant.id, alex.id, *_window(9, 30), 10)
        assert checker.is_available(tenant.id, alex.id, *_window(9, 40), 10)

    def test_unassigned_with_one_free_staff(self, checker, tenant, crew) -> None:
        assert checker.is_available(tenant.id, None, *_window(9, 0), 10)

    def test_unassigned_when_everyone_is_busy(
        self, checker, booking_manager, tenant, service, client_user, crew
    ) -> None:
        _, blair = crew
        reserve(booking_manager, tenant, service, client_user, ny_local(MONDAY, 9, 0), blair)

        assert not checker.is_available(tenant.id, None, *_window(9, 0), 10)
        assert checker.is_available(tenant.id, None, *_window(10, 0), 10)


def test_staff_of_another_tenant_is_rejected(db, checker, make_staff, tenant) -> None:
    other = Tenant(name="Other Shop", slug="other-shop", timezone="America/New_York")
    db.add(other)
    db.commit()
    outsider = make_staff(other, name="Outsider")

    with pytest.raises(NotFoundException) as exc_info:
        checker.is_available(tenant.id, outsider.id, *_window(9, 0), 10)

    assert exc_info.value.code == "STAFF_NOT_FOUND"


def test_unknown_tenant_is_rejected(checker) -> None:
    with pytest.raises(NotFoundException) as exc_info:
        checker.is_available("01HZZZZZZZZZZZZZZZZZZZZZZZ", None, *_window(9, 0), 10)

    assert exc_info.value.code == "TENANT_NOT_FOUND"


def test_solo_tenant_checks_tenant_resource(
    checker, monday_hours, booking_manager, tenant, service, client_user
) -> None:
    reserve(booking_manager, tenant, service, client_user, ny_local(MONDAY, 9, 0))

    assert not checker.is_available(tenant.id, None, *_window(9, 15), 10)
    assert checker.is_available(tenant.id, None, *_window(10, 0), 10)
