"""Job inspection and manual trigger routes."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Path

from app.api.dependencies import get_job_scheduler
from app.core.exceptions import NotFoundError
from app.jobs import JobScheduler, get_job, get_lock_registry, list_job_names
from app.schemas.feed import JobRunResponse, JobStatusResponse

router = APIRouter()


def _validate_job_name(name: str = Path(..., min_length=1, max_length=50)) -> str:
    """Validate and normalize job name from path parameter."""
    return name.strip().lower()


@router.get(
    "",
    response_model=List[JobStatusResponse],
    summary="List jobs",
    description="Scheduled jobs with their next run time and whether they are running.",
)
async def list_jobs(
    scheduler: Optional[JobScheduler] = Depends(get_job_scheduler),
) -> List[JobStatusResponse]:
    if scheduler is not None and scheduler.running:
        return [JobStatusResponse(**job) for job in scheduler.get_jobs_status()]

    locks = get_lock_registry().status()
    return [
        JobStatusResponse(id=name, name=name, running=locks.get(name, False))
        for name in list_job_names()
    ]


@router.post(
    "/{name}/run",
    response_model=JobRunResponse,
    summary="Run a job now",
    description="Run a job immediately; a run already in progress makes this return 0.",
)
async def run_job(name: str = Depends(_validate_job_name)) -> JobRunResponse:
    job_func = get_job(name)
    if job_func is None:
        raise NotFoundError(message=f"Job '{name}' not found")
    count = await job_func()
    return JobRunResponse(job=name, count=count)
