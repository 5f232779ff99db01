"""
Redis mutex per staff resource for the reservation path.

This lock only sheds contention between API processes before they reach
the database; the database lock and exclusion constraint stay authoritative.
Every Redis failure is fail-open.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
from typing import Iterator, Optional

from redis import Redis
import ulid

from app.core.config import settings
from app.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

# Delete only when we still own the lock
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def _lock_key(resource_key: str) -> str:
    return f"{settings.redis_namespace}:lock:reservation:{resource_key}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("reservation_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def reset_redis_client() -> None:
    global _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        _SYNC_REDIS = None


def acquire_reservation_lock(resource_key: str, token: str, ttl_s: int) -> bool:
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_reservation_lock("redis_unavailable")
        return True
    try:
        acquired = bool(client.set(_lock_key(resource_key), token, nx=True, ex=ttl_s))
    except Exception as exc:
        prometheus_metrics.record_reservation_lock("error")
        logger.warning(
            "reservation_lock_acquire_failed",
            extra={
                "resource_key": resource_key,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return True
    prometheus_metrics.record_reservation_lock("acquired" if acquired else "contention")
    return acquired


def release_reservation_lock(resource_key: str, token: str) -> None:
    client = _get_sync_redis()
    if client is None:
        return
    try:
        client.eval(_RELEASE_SCRIPT, 1, _lock_key(resource_key), token)
    except Exception as exc:
        logger.warning(
            "reservation_lock_release_failed",
            extra={
                "resource_key": resource_key,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def reservation_lock(resource_key: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    """
    Hold the Redis mutex for ``resource_key`` while the block runs.

    Yields True when the caller may proceed (acquired, disabled, or Redis
    down) and False when another process holds the lock.
    """
    if not settings.reservation_redis_lock_enabled:
        yield True
        return

    token = str(ulid.ULID())
    acquired = acquire_reservation_lock(
        resource_key, token, ttl_s or settings.reservation_lock_ttl_seconds
    )
    try:
        yield acquired
    finally:
        if acquired:
            release_reservation_lock(resource_key, token)
