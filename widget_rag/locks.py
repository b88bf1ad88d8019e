"""Run-in-progress guards for the retrain scan.

Provides:
- get_redis: Cached Redis client from REDIS_URL.
- LocalScanGuard: non-blocking threading lock for a single process.
- RedisScanGuard: Redis lock token with expiry, for several API replicas sharing
  one database.
- make_scan_guard: choose a guard from settings.RETRAIN_LOCK_BACKEND.

A guard's ``acquire`` never blocks: a scan that finds the guard held is skipped.
"""
import logging
import threading
from typing import Optional, Protocol

import redis
from redis.exceptions import LockError

from widget_rag.config import settings

logger = logging.getLogger(__name__)

SCAN_LOCK_KEY = "rag:retrain:scan"

_redis_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Return a cached Redis client configured from settings.REDIS_URL.

    Returns:
        redis.Redis: Client with decode_responses=True.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


class ScanGuard(Protocol):
    def acquire(self) -> bool:
        ...

    def release(self) -> None:
        ...


class LocalScanGuard:
    def __init__(self):
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()


class RedisScanGuard:
    """Distributed guard backed by a Redis lock.

    The lock expires after ``ttl`` seconds so a crashed scanner cannot block scans
    forever; keep ``ttl`` below the scan interval.
    """

    def __init__(self, client: Optional[redis.Redis] = None, key: str = SCAN_LOCK_KEY, ttl: Optional[int] = None):
        self.client = client or get_redis()
        self.key = key
        self.ttl = ttl or settings.RETRAIN_LOCK_TTL_SECONDS
        self._lock = None

    def acquire(self) -> bool:
        lock = self.client.lock(self.key, timeout=self.ttl, blocking=False)
        if not lock.acquire(blocking=False):
            return False
        self._lock = lock
        return True

    def release(self) -> None:
        lock, self._lock = self._lock, None
        if lock is None:
            return
        try:
            lock.release()
        except LockError as exc:
            # Expired before the scan finished; another scanner may own it now
            logger.warning("Retrain scan lock %s was lost before release: %s", self.key, exc)


def make_scan_guard(backend: Optional[str] = None) -> ScanGuard:
    backend = (backend or settings.RETRAIN_LOCK_BACKEND).lower()
    if backend == "redis":
        return RedisScanGuard()
    if backend != "local":
        raise ValueError(f"unknown RETRAIN_LOCK_BACKEND: {backend!r}")
    return LocalScanGuard()
