"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
import random
import time
from typing import Any, Callable, Generator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from app.core.config import settings

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs that mean "try the whole transaction again":
# serialization_failure, deadlock_detected, lock_not_available
TRANSIENT_PGCODES = frozenset({"40001", "40P01", "55P03"})

_TRANSIENT_ERROR_SNIPPETS = (
    "could not serialize access",
    "deadlock detected",
    "database is locked",
    "database table is locked",
    "server closed the connection",
    "ssl connection has been closed unexpectedly",
)


def install_sqlite_immediate_transactions(engine: Engine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first write, which would let two
    transactions read the same calendar state before either inserts.
    BEGIN IMMEDIATE serializes the whole read-check-write unit.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(db_url: str) -> Engine:
    """Create an engine tuned for the URL's dialect."""
    if db_url.startswith("sqlite"):
        in_memory = ":memory:" in db_url or db_url.rstrip("/").endswith("sqlite:")
        kwargs: dict[str, Any] = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
        }
        if in_memory:
            kwargs["poolclass"] = StaticPool
        sqlite_engine = create_engine(db_url, **kwargs)
        install_sqlite_immediate_transactions(sqlite_engine)
        return sqlite_engine

    return create_engine(
        db_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=1800,
        pool_pre_ping=True,
        connect_args={
            "connect_timeout": 5,
            "options": f"-c statement_timeout={settings.db_statement_timeout_ms}",
            "application_name": settings.app_name,
        },
    )


engine: Engine = build_engine(settings.get_database_url())


# Log pool events for monitoring
@event.listens_for(engine, "connect")
def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
    connection_record.info["connect_time"] = datetime.now()
    logger.debug("Database connection established")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _pgcode(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_transient_db_error(exc: BaseException) -> bool:
    """
    Return True when the store aborted a transaction for contention rather than
    because of a genuine data conflict.
    """
    if not isinstance(exc, (OperationalError, DBAPIError)):
        return False
    if _pgcode(exc) in TRANSIENT_PGCODES:
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _TRANSIENT_ERROR_SNIPPETS)


T = TypeVar("T")


def retry_delay(attempt: int, base: float = 0.1) -> float:
    """Exponential backoff with jitter for the given 1-based attempt."""
    return base * (2 ** (attempt - 1)) + random.uniform(0, base * attempt)


def with_db_retry(
    op_name: str,
    func: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.1,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """
    Execute a DB operation with retries for transient store failures.

    ``func`` must run its own transaction so each attempt starts clean. The
    last transient error is re-raised once the attempts are used up.
    """

    attempt = 1
    while True:
        try:
            return func()
        except DBAPIError as exc:
            if attempt >= max_attempts or not is_transient_db_error(exc):
                raise

            delay = retry_delay(attempt, base_delay)
            logger.warning(
                "Transient DB failure detected, retrying",
                extra={
                    "event": "db_retry",
                    "op": op_name,
                    "attempt": attempt,
                    "delay": delay,
                    "error": str(exc),
                },
            )
            (sleep or time.sleep)(delay)
            attempt += 1


__all__ = [
    "Base",
    "SessionLocal",
    "build_engine",
    "engine",
    "get_db",
    "install_sqlite_immediate_transactions",
    "is_transient_db_error",
    "retry_delay",
    "with_db_retry",
]
