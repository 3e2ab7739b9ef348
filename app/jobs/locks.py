"""Per-job single-flight locks.

Jobs run in one process, so a non-blocking mutex per job type is enough: a
second invocation while the first still holds the lock is dropped, not queued.

Usage:
    lock = get_lock_registry().get("ingest")
    if not lock.try_acquire():
        return 0
    try:
        ...
    finally:
        lock.release()
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from app.core.logging import get_logger


logger = get_logger("jobs.locks")


class JobLock:
    """Try-acquire / release mutex for one job type."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self.acquired_at: Optional[float] = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        if not self._lock.acquire(blocking=False):
            return False
        self.acquired_at = time.monotonic()
        logger.debug(f"Lock acquired: {self.name}")
        return True

    def release(self) -> None:
        if not self._lock.locked():
            return
        self.acquired_at = None
        self._lock.release()
        logger.debug(f"Lock released: {self.name}")

    def held_for(self) -> float:
        """Seconds the current holder has had the lock, 0 when free."""
        if self.acquired_at is None:
            return 0.0
        return time.monotonic() - self.acquired_at


class JobLockRegistry:
    """One JobLock per job name, created on first use."""

    def __init__(self):
        self._locks: dict[str, JobLock] = {}

    def get(self, name: str) -> JobLock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = JobLock(name)
        return lock

    def status(self) -> dict[str, bool]:
        return {name: lock.locked for name, lock in self._locks.items()}


_registry: Optional[JobLockRegistry] = None


def get_lock_registry() -> JobLockRegistry:
    global _registry
    if _registry is None:
        _registry = JobLockRegistry()
    return _registry


def reset_lock_registry() -> None:
    global _registry
    _registry = None
