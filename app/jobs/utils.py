"""Shared utilities for job definitions.

Common helpers and logging functions used across all job modules.
"""

from __future__ import annotations

import time
from typing import Any

from app.core.logging import get_logger


logger = get_logger("jobs.utils")


def log_job_success(job_name: str, message: str, **metrics: Any) -> None:
    """Log a structured job success message with metrics.

    Args:
        job_name: Name of the job (e.g., "ingest")
        message: Human-readable summary message
        **metrics: Key-value pairs of metrics to include in structured log

    Example:
        log_job_success("ingest", "Stored 42 articles",
            inserted=30, merged=12, duration_ms=1234)
    """
    log_data = {
        "job": job_name,
        "status": "success",
        **metrics,
    }

    # Format: "job_name completed: message | k=v k=v"
    metrics_str = " ".join(f"{k}={v}" for k, v in metrics.items())
    logger.info(f"{job_name} completed: {message} | {metrics_str}", extra={"extra_fields": log_data})


def job_timer() -> float:
    """Start a job timer.

    Usage:
        job_start = job_timer()
        # ... do work ...
        duration_ms = elapsed_ms(job_start)
    """
    return time.monotonic()


def elapsed_ms(start: float) -> int:
    """Elapsed time in whole milliseconds since ``start``."""
    return int((time.monotonic() - start) * 1000)
