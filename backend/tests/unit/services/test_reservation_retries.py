from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.config import settings
from app.core.exceptions import (
    ForbiddenException,
    SlotTakenException,
    TransientReservationException,
    ValidationException,
)
from app.services.booking_transaction_manager import (
    BookingTransactionManager,
    ReservationRequest,
    _ResourceBusy,
)
from tests.helpers.clock import FROZEN_NOW


class _DriverError(Exception):
    def __init__(self, message: str = "", pgcode: str | None = None) -> None:
        super().__init__(message)
        self.pgcode = pgcode


def _serialization_failure() -> OperationalError:
    return OperationalError(
        "INSERT INTO bookings", {}, _DriverError("could not serialize access", "40001")
    )


def _request(**overrides) -> ReservationRequest:
    data = dict(
        tenant_id="tenant-1",
        service_id="service-1",
        client_id="client-1",
        start_utc=datetime(2027, 1, 4, 14, 0, tzinfo=timezone.utc),
        staff_id="staff-1",
    )
    data.update(overrides)
    return ReservationRequest(**data)


@pytest.fixture
def sleep() -> Mock:
    return Mock()


@pytest.fixture
def manager(sleep: Mock) -> BookingTransactionManager:
    return BookingTransactionManager(MagicMock(), clock=lambda: FROZEN_NOW, sleep=sleep)


class TestTransientRetries:
    def test_succeeds_on_second_attempt(self, manager, sleep) -> None:
        booking = Mock(id="booking-1")
        manager._reserve_attempt = Mock(side_effect=[_serialization_failure(), booking])

        assert manager.reserve(_request()) is booking
        assert manager._reserve_attempt.call_count == 2
        sleep.assert_called_once()

    def test_persistent_contention_becomes_transient(self, manager, sleep, monkeypatch) -> None:
        monkeypatch.setattr(settings, "booking_max_retries", 3)
        manager._reserve_attempt = Mock(side_effect=_serialization_failure())

        with pytest.raises(TransientReservationException) as exc_info:
            manager.reserve(_request())

        assert manager._reserve_attempt.call_count == 3
        assert sleep.call_count == 2
        http_exc = exc_info.value.to_http_exception()
        assert http_exc.status_code == 503
        assert http_exc.headers == {"Retry-After": "1"}
        assert exc_info.value.code == "Transient"

    def test_redis_contention_is_retried(self, manager, sleep, monkeypatch) -> None:
        monkeypatch.setattr(settings, "booking_max_retries", 2)
        manager._reserve_attempt = Mock(side_effect=_ResourceBusy())

        with pytest.raises(TransientReservationException):
            manager.reserve(_request())

        assert manager._reserve_attempt.call_count == 2

    def test_non_transient_operational_error_propagates(self, manager, sleep) -> None:
        error = OperationalError("SELECT", {}, _DriverError("relation missing", "42P01"))
        manager._reserve_attempt = Mock(side_effect=error)

        with pytest.raises(OperationalError):
            manager.reserve(_request())

        assert manager._reserve_attempt.call_count == 1
        sleep.assert_not_called()


class TestIntegrityErrors:
    def test_exclusion_violation_is_slot_taken(self, manager, sleep) -> None:
        error = IntegrityError(
            "INSERT",
            {},
            _DriverError(
                'conflicting key value violates exclusion constraint "bookings_no_overlap_per_resource"',
                "23P01",
            ),
        )
        manager._reserve_attempt = Mock(side_effect=error)

        with pytest.raises(SlotTakenException) as exc_info:
            manager.reserve(_request())

        assert exc_info.value.code == "SlotTaken"
        assert exc_info.value.to_http_exception().status_code == 409
        # Conflicts are never retried
        assert manager._reserve_attempt.call_count == 1
        sleep.assert_not_called()

    def test_foreign_key_violation_is_validation(self, manager) -> None:
        error = IntegrityError(
            "INSERT", {}, _DriverError("insert violates foreign key constraint", "23503")
        )
        manager._reserve_attempt = Mock(side_effect=error)

        with pytest.raises(ValidationException) as exc_info:
            manager.reserve(_request())

        assert exc_info.value.code == "INVALID_BOOKING_DATA"

    def test_slot_taken_raised_by_attempt_is_not_retried(self, manager, sleep) -> None:
        manager._reserve_attempt = Mock(side_effect=SlotTakenException())

        with pytest.raises(SlotTakenException):
            manager.reserve(_request())

        assert manager._reserve_attempt.call_count == 1


class TestRequestValidation:
    def test_naive_start_rejected_before_any_attempt(self, manager) -> None:
        manager._reserve_attempt = Mock()

        with pytest.raises(ValidationException) as exc_info:
            manager.reserve(_request(start_utc=datetime(2027, 1, 4, 14, 0)))

        assert exc_info.value.code == "NAIVE_TIMESTAMP"
        manager._reserve_attempt.assert_not_called()

    def test_past_start_rejected_before_store_access(self, manager) -> None:
        manager._reserve_attempt = Mock()
        manager.db.reset_mock()

        with pytest.raises(ValidationException) as exc_info:
            manager.reserve(_request(start_utc=FROZEN_NOW))

        assert exc_info.value.code == "START_IN_PAST"
        manager._reserve_attempt.assert_not_called()
        assert manager.db.method_calls == []


class TestCancelPermissions:
    def test_staff_may_cancel_any(self) -> None:
        booking = Mock(client_id="client-1")
        BookingTransactionManager.ensure_can_cancel(booking, "staff-9", "staff")
        BookingTransactionManager.ensure_can_cancel(booking, "pro-9", "pro")

    def test_client_may_cancel_own_only(self) -> None:
        booking = Mock(client_id="client-1")
        BookingTransactionManager.ensure_can_cancel(booking, "client-1", "client")
        with pytest.raises(ForbiddenException):
            BookingTransactionManager.ensure_can_cancel(booking, "client-2", "client")
