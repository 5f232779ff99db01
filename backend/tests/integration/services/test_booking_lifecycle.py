from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.core.exceptions import (
    InvalidBookingTransitionException,
    NotFoundException,
    TransientReservationException,
    ValidationException,
)
from app.models.booking import BookingStatus, PaymentStatus
from app.services.booking_transaction_manager import BookingTransactionManager
from tests.helpers.booking import reserve
from tests.helpers.clock import MONDAY, ny_local


@pytest.fixture
def booking(monday_hours, booking_manager, tenant, service, staff, client_user):
    return reserve(booking_manager, tenant, service, client_user, ny_local(MONDAY, 9, 0), staff)


@pytest.fixture
def after_hours_manager(db) -> BookingTransactionManager:
    """Manager whose clock reads after the Monday booking has ended."""
    return BookingTransactionManager(db, clock=lambda: ny_local(MONDAY, 12, 0), sleep=lambda _s: None)


def test_confirm_records_full_payment(booking_manager, booking) -> None:
    confirmed = booking_manager.mark_confirmed(booking.id)

    assert confirmed.status == BookingStatus.CONFIRMED.value
    assert confirmed.payment_status == PaymentStatus.PAID.value
    assert confirmed.confirmed_at is not None


def test_confirm_records_deposit(
    monday_hours, booking_manager, make_service, tenant, staff, client_user
) -> None:
    deposit_service = make_service(tenant, deposit_cents=1500)
    pending = reserve(
        booking_manager, tenant, deposit_service, client_user, ny_local(MONDAY, 9, 0), staff
    )

    confirmed = booking_manager.mark_confirmed(pending.id)

    assert confirmed.payment_status == PaymentStatus.DEPOSIT.value


def test_confirm_twice_is_rejected(booking_manager, booking) -> None:
    booking_manager.mark_confirmed(booking.id)

    with pytest.raises(InvalidBookingTransitionException) as exc_info:
        booking_manager.mark_confirmed(booking.id)

    assert exc_info.value.code == "INVALID_TRANSITION"


def test_cancel_records_reason(booking_manager, booking, client_user) -> None:
    cancelled = booking_manager.mark_cancelled(
        booking.id, reason="running late", cancelled_by=client_user.id
    )

    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.cancellation_reason == "running late"
    assert cancelled.cancelled_at is not None
    assert not cancelled.is_active


def test_cancelled_is_terminal(booking_manager, booking) -> None:
    booking_manager.mark_cancelled(booking.id)

    with pytest.raises(InvalidBookingTransitionException):
        booking_manager.mark_confirmed(booking.id)


def test_complete_requires_elapsed_end(booking_manager, booking) -> None:
    booking_manager.mark_confirmed(booking.id)

    with pytest.raises(ValidationException) as exc_info:
        booking_manager.mark_completed(booking.id)

    assert exc_info.value.code == "BOOKING_NOT_ENDED"


def test_complete_after_end(booking_manager, after_hours_manager, booking) -> None:
    booking_manager.mark_confirmed(booking.id)

    completed = after_hours_manager.mark_completed(booking.id)

    assert completed.status == BookingStatus.COMPLETED.value
    assert completed.completed_at is not None


def test_no_show_after_end(booking_manager, after_hours_manager, booking) -> None:
    booking_manager.mark_confirmed(booking.id)

    marked = after_hours_manager.mark_no_show(booking.id)

    assert marked.status == BookingStatus.NO_SHOW.value


def test_pending_cannot_complete(after_hours_manager, booking) -> None:
    with pytest.raises(InvalidBookingTransitionException):
        after_hours_manager.mark_completed(booking.id)


def test_unknown_booking(booking_manager) -> None:
    with pytest.raises(NotFoundException) as exc_info:
        booking_manager.get_booking("01HZZZZZZZZZZZZZZZZZZZZZZZ")
    assert exc_info.value.code == "BOOKING_NOT_FOUND"

    with pytest.raises(NotFoundException):
        booking_manager.mark_confirmed("01HZZZZZZZZZZZZZZZZZZZZZZZ")


def _locked_for(failures: int, load):
    """Wrap a row loader so its first ``failures`` calls hit a locked store."""
    calls = {"n": 0}

    def get_for_update(booking_id: str):
        calls["n"] += 1
        if calls["n"] <= failures:
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return load(booking_id)

    return get_for_update, calls


def test_transition_retries_locked_store(monkeypatch, booking_manager, booking) -> None:
    get_for_update, calls = _locked_for(1, booking_manager.repository.get_for_update)
    monkeypatch.setattr(booking_manager.repository, "get_for_update", get_for_update)

    confirmed = booking_manager.mark_confirmed(booking.id)

    assert confirmed.status == BookingStatus.CONFIRMED.value
    assert calls["n"] == 2


def test_transition_reports_transient_when_store_stays_locked(
    monkeypatch, booking_manager, booking
) -> None:
    get_for_update, calls = _locked_for(100, booking_manager.repository.get_for_update)
    monkeypatch.setattr(booking_manager.repository, "get_for_update", get_for_update)

    with pytest.raises(TransientReservationException) as exc_info:
        booking_manager.mark_cancelled(booking.id, reason="sick")

    assert exc_info.value.code == "Transient"
    assert calls["n"] == settings.booking_max_retries
    assert booking_manager.get_booking(booking.id).status == BookingStatus.PENDING.value
