"""Pydantic schemas for API requests and responses."""

from .common import ErrorResponse, HealthResponse
from .feed import FeedItem, FeedResponse, JobRunResponse, JobStatusResponse


__all__ = [
    "ErrorResponse",
    "FeedItem",
    "FeedResponse",
    "HealthResponse",
    "JobRunResponse",
    "JobStatusResponse",
]
