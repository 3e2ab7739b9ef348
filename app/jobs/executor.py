"""Job boundary and manual execution.

Every scheduled job runs behind ``job_boundary``: single-flight through its
JobLock, exceptions logged and turned into a 0 count, lock always released.
"""

from __future__ import annotations

import functools
import time
import uuid
from collections.abc import Awaitable, Callable

from app.core.exceptions import JobError
from app.core.logging import get_logger, job_run_var

from .locks import JobLockRegistry, get_lock_registry
from .registry import get_job


logger = get_logger("jobs.executor")

JobFunc = Callable[..., Awaitable[int]]


def job_boundary(name: str, locks: JobLockRegistry | None = None) -> Callable[[JobFunc], JobFunc]:
    """Wrap an async job so it never raises and never overlaps itself."""

    def decorator(func: JobFunc) -> JobFunc:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> int:
            lock = (locks or get_lock_registry()).get(name)
            if not lock.try_acquire():
                logger.info(f"Job {name} skipped - already running")
                return 0

            token = job_run_var.set(f"{name}-{uuid.uuid4().hex[:8]}")
            start_time = time.monotonic()
            try:
                count = await func(*args, **kwargs)
                return int(count or 0)
            except Exception:
                duration = time.monotonic() - start_time
                logger.exception(f"Job {name} failed after {duration:.2f}s")
                return 0
            finally:
                lock.release()
                job_run_var.reset(token)

        return wrapper

    return decorator


async def execute_job(name: str) -> int:
    """
    Execute a registered job by name.

    Args:
        name: Job name

    Returns:
        The job's count (0 when skipped or failed)

    Raises:
        JobError: If no job is registered under ``name``
    """
    job_func = get_job(name)
    if job_func is None:
        raise JobError(message=f"Unknown job: {name}", error_code="UNKNOWN_JOB")

    start_time = time.monotonic()
    count = await job_func()
    duration = time.monotonic() - start_time
    logger.info(f"Job {name} executed in {duration:.2f}s: {count}")
    return count
