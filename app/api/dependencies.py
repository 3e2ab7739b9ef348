"""FastAPI dependencies."""

from __future__ import annotations

from app.jobs import JobScheduler, PipelineContext, get_context, get_scheduler


def get_pipeline_context() -> PipelineContext:
    return get_context()


def get_job_scheduler() -> JobScheduler | None:
    return get_scheduler()
