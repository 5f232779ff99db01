"""Clients racing for the same or overlapping slots, and a write-locked store."""

from __future__ import annotations

from datetime import timedelta
import sqlite3
import threading

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.exceptions import SlotTakenException, TransientReservationException
from app.database import Base, build_engine
from app.models.availability import WorkingHoursRule
from app.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from app.models.service import Service
from app.models.tenant import StaffAccount, Tenant
from app.models.user import User, UserRole
from app.services.booking_transaction_manager import BookingTransactionManager
from tests.helpers.booking import make_request
from tests.helpers.clock import FROZEN_NOW, MONDAY, ny_local

RACERS = 8


@pytest.fixture
def file_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded(file_engine):
    Session = sessionmaker(bind=file_engine, expire_on_commit=False)
    with Session() as session:
        tenant = Tenant(name="Race Cuts", slug="race-cuts", timezone="America/New_York")
        barber = User(role=UserRole.STAFF.value, name="Barber", email="barber@example.com")
        clients = [
            User(role=UserRole.CLIENT.value, name=f"Client {i}", email=f"client{i}@example.com")
            for i in range(RACERS)
        ]
        session.add_all([tenant, barber, *clients])
        session.flush()
        service = Service(
            tenant_id=tenant.id,
            name="Fade",
            duration_minutes=30,
            buffer_minutes=10,
            advance_booking_days=30,
        )
        session.add_all(
            [
                service,
                StaffAccount(tenant_id=tenant.id, user_id=barber.id),
                WorkingHoursRule(
                    tenant_id=tenant.id, day_of_week=1, start_time="09:00", end_time="17:00"
                ),
            ]
        )
        session.commit()
        return Session, tenant.id, service.id, [c.id for c in clients]


def _race(Session, requests):
    barrier = threading.Barrier(len(requests))
    outcomes = []
    lock = threading.Lock()

    def _run(request):
        session = Session()
        manager = BookingTransactionManager(
            session, clock=lambda: FROZEN_NOW, sleep=lambda _s: None
        )
        try:
            barrier.wait()
            manager.reserve(request)
            outcome = "won"
        except SlotTakenException:
            outcome = "taken"
        finally:
            session.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_run, args=(r,)) for r in requests]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def test_exactly_one_reservation_wins(seeded) -> None:
    Session, tenant_id, service_id, client_ids = seeded
    start = ny_local(MONDAY, 10, 0)
    requests = [make_request(tenant_id, service_id, cid, start) for cid in client_ids]

    outcomes = _race(Session, requests)

    assert sorted(outcomes) == ["taken"] * (RACERS - 1) + ["won"]
    with Session() as session:
        assert session.query(Booking).count() == 1


def test_disjoint_slots_all_win(seeded) -> None:
    Session, tenant_id, service_id, client_ids = seeded
    requests = [
        make_request(tenant_id, service_id, cid, ny_local(MONDAY, 9 + i, 0))
        for i, cid in enumerate(client_ids)
    ]

    outcomes = _race(Session, requests)

    assert outcomes == ["won"] * RACERS
    with Session() as session:
        assert session.query(Booking).count() == RACERS


def _active_bookings(Session):
    with Session() as session:
        return (
            session.query(Booking)
            .filter(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .order_by(Booking.start_utc)
            .all()
        )


def _assert_pairwise_clear(bookings) -> None:
    for i, first in enumerate(bookings):
        for second in bookings[i + 1 :]:
            assert not (
                first.start_utc < second.blocked_until_utc
                and second.start_utc < first.blocked_until_utc
            ), (first.start_utc, second.start_utc)


def test_partially_overlapping_starts_one_wins(seeded) -> None:
    """Starts 10:00 through 10:35; 10:00 and 10:35 collide only through the buffer."""
    Session, tenant_id, service_id, client_ids = seeded
    requests = [
        make_request(tenant_id, service_id, cid, ny_local(MONDAY, 10, 5 * i))
        for i, cid in enumerate(client_ids)
    ]

    outcomes = _race(Session, requests)

    assert sorted(outcomes) == ["taken"] * (RACERS - 1) + ["won"]
    bookings = _active_bookings(Session)
    assert len(bookings) == 1
    _assert_pairwise_clear(bookings)


def test_staggered_starts_never_overlap(seeded) -> None:
    Session, tenant_id, service_id, client_ids = seeded
    first_start = ny_local(MONDAY, 10, 0)
    requests = [
        make_request(tenant_id, service_id, cid, first_start + timedelta(minutes=15 * i))
        for i, cid in enumerate(client_ids)
    ]

    outcomes = _race(Session, requests)

    assert len(outcomes) == RACERS
    bookings = _active_bookings(Session)
    assert len(bookings) == outcomes.count("won") >= 2
    _assert_pairwise_clear(bookings)


def test_write_locked_store_reports_transient(seeded, file_engine, monkeypatch) -> None:
    _, tenant_id, service_id, client_ids = seeded
    monkeypatch.setattr(settings, "sqlite_busy_timeout_seconds", 0.05)
    monkeypatch.setattr(settings, "booking_max_retries", 2)
    impatient = build_engine(file_engine.url.render_as_string(hide_password=False))
    session = sessionmaker(bind=impatient, expire_on_commit=False)()
    manager = BookingTransactionManager(session, clock=lambda: FROZEN_NOW, sleep=lambda _s: None)
    request = make_request(tenant_id, service_id, client_ids[0], ny_local(MONDAY, 10, 0))

    holder = sqlite3.connect(file_engine.url.database, isolation_level=None)
    try:
        holder.execute("BEGIN IMMEDIATE")
        with pytest.raises(TransientReservationException) as exc_info:
            manager.reserve(request)
        assert exc_info.value.code == "Transient"
        holder.execute("ROLLBACK")

        booking = manager.reserve(request)
        assert booking.start_utc == ny_local(MONDAY, 10, 0)
    finally:
        holder.close()
        session.close()
        impatient.dispose()
