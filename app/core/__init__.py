"""Core infrastructure: settings, logging, exceptions."""

from .config import settings
from .exceptions import (
    AppException,
    ExternalServiceError,
    JobError,
    NotFoundError,
    OracleResponseError,
    ProviderRateLimitError,
    ProviderTransientError,
    ValidationError,
)


__all__ = [
    "AppException",
    "ExternalServiceError",
    "JobError",
    "NotFoundError",
    "OracleResponseError",
    "ProviderRateLimitError",
    "ProviderTransientError",
    "ValidationError",
    "settings",
]
