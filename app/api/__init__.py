"""API module with routers and dependencies."""

from .app import create_api_app
from .dependencies import get_job_scheduler, get_pipeline_context


__all__ = [
    "create_api_app",
    "get_job_scheduler",
    "get_pipeline_context",
]
