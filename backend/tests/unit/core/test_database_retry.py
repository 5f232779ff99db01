from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.database import is_transient_db_error, retry_delay, with_db_retry


class _PgError(Exception):
    def __init__(self, pgcode: str, message: str = "") -> None:
        super().__init__(message)
        self.pgcode = pgcode


def _operational(pgcode: str = "", message: str = "") -> OperationalError:
    return OperationalError("SELECT 1", {}, _PgError(pgcode, message))


class TestIsTransientDbError:
    @pytest.mark.parametrize("pgcode", ["40001", "40P01", "55P03"])
    def test_transient_sqlstates(self, pgcode: str) -> None:
        assert is_transient_db_error(_operational(pgcode))

    def test_sqlite_locked_message(self) -> None:
        assert is_transient_db_error(_operational(message="database is locked"))

    def test_other_operational_error_is_not_transient(self) -> None:
        assert not is_transient_db_error(_operational("42P01", "relation does not exist"))

    def test_integrity_error_is_never_transient(self) -> None:
        error = IntegrityError("INSERT", {}, _PgError("23P01", "conflicting key value"))
        assert not is_transient_db_error(error)

    def test_plain_exception(self) -> None:
        assert not is_transient_db_error(RuntimeError("database is locked"))


class TestRetryHelpers:
    def test_retry_delay_grows(self) -> None:
        assert 0.1 <= retry_delay(1) <= 0.2
        assert 0.2 <= retry_delay(2) <= 0.4
        assert 0.4 <= retry_delay(3) <= 0.7

    def test_with_db_retry_recovers(self, monkeypatch) -> None:
        monkeypatch.setattr("app.database.time.sleep", lambda _s: None)
        calls = {"n": 0}

        def flaky() -> str:
            calls["n"] += 1
            if calls["n"] == 1:
                raise _operational("40001")
            return "ok"

        assert with_db_retry("flaky", flaky) == "ok"
        assert calls["n"] == 2

    def test_with_db_retry_gives_up(self, monkeypatch) -> None:
        monkeypatch.setattr("app.database.time.sleep", lambda _s: None)

        def always_locked() -> None:
            raise _operational("40P01")

        with pytest.raises(OperationalError):
            with_db_retry("locked", always_locked, max_attempts=2)

    def test_with_db_retry_uses_given_sleep_and_base_delay(self) -> None:
        delays: list[float] = []
        calls = {"n": 0}

        def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 3:
                raise _operational(message="database is locked")
            return "ok"

        assert with_db_retry("flaky", flaky, base_delay=0.01, sleep=delays.append) == "ok"
        assert len(delays) == 2
        assert all(0.0 < delay < 0.1 for delay in delays)

    def test_with_db_retry_does_not_retry_data_errors(self) -> None:
        delays: list[float] = []

        def broken() -> None:
            raise IntegrityError("INSERT", {}, _PgError("23503", "foreign key violation"))

        with pytest.raises(IntegrityError):
            with_db_retry("broken", broken, sleep=delays.append)
        assert delays == []
