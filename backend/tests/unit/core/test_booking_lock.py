from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from app.core import booking_lock
from app.core.config import settings


@pytest.fixture
def redis_enabled(monkeypatch):
    monkeypatch.setattr(settings, "reservation_redis_lock_enabled", True)
    yield
    booking_lock.reset_redis_client()


class TestReservationLock:
    def test_disabled_lock_always_proceeds(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "reservation_redis_lock_enabled", False)
        fake = MagicMock()
        monkeypatch.setattr(booking_lock, "_get_sync_redis", lambda: fake)

        with booking_lock.reservation_lock("staff-1") as acquired:
            assert acquired is True

        fake.set.assert_not_called()

    def test_acquires_and_releases_with_token(self, monkeypatch, redis_enabled) -> None:
        fake = MagicMock()
        fake.set.return_value = True
        monkeypatch.setattr(booking_lock, "_get_sync_redis", lambda: fake)

        with booking_lock.reservation_lock("staff-1") as acquired:
            assert acquired is True

        key = fake.set.call_args.args[0]
        token = fake.set.call_args.args[1]
        assert key == f"{settings.redis_namespace}:lock:reservation:staff-1"
        assert fake.set.call_args.kwargs == {"nx": True, "ex": settings.reservation_lock_ttl_seconds}
        fake.eval.assert_called_once()
        assert fake.eval.call_args.args[2:] == (key, token)

    def test_contention_yields_false_and_skips_release(self, monkeypatch, redis_enabled) -> None:
        fake = MagicMock()
        fake.set.return_value = None
        monkeypatch.setattr(booking_lock, "_get_sync_redis", lambda: fake)

        with booking_lock.reservation_lock("staff-1") as acquired:
            assert acquired is False

        fake.eval.assert_not_called()

    def test_redis_unavailable_fails_open(self, monkeypatch, redis_enabled) -> None:
        monkeypatch.setattr(booking_lock, "_get_sync_redis", lambda: None)

        with booking_lock.reservation_lock("staff-1") as acquired:
            assert acquired is True

    def test_redis_error_fails_open(self, monkeypatch, redis_enabled) -> None:
        fake = MagicMock()
        fake.set.side_effect = ConnectionError("reset by peer")
        monkeypatch.setattr(booking_lock, "_get_sync_redis", lambda: fake)

        with booking_lock.reservation_lock("staff-1") as acquired:
            assert acquired is True
