"""Background pipeline jobs with single-flight locking."""

from .executor import execute_job, job_boundary
from .locks import JobLock, JobLockRegistry, get_lock_registry
from .pipeline_jobs import (
    PipelineContext,
    close_context,
    get_context,
    run_explanation_cache_sweep,
    run_ingest,
    run_process,
    run_rank,
)
from .registry import get_all_jobs, get_job, list_job_names, register_job
from .scheduler import (
    JobScheduler,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)


__all__ = [
    "JobLock",
    "JobLockRegistry",
    "JobScheduler",
    "PipelineContext",
    "close_context",
    "execute_job",
    "get_all_jobs",
    "get_context",
    "get_job",
    "get_lock_registry",
    "get_scheduler",
    "job_boundary",
    "list_job_names",
    "register_job",
    "run_explanation_cache_sweep",
    "run_ingest",
    "run_process",
    "run_rank",
    "start_scheduler",
    "stop_scheduler",
]
