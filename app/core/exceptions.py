"""Custom exceptions and centralized exception handlers."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception with structured error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to RFC 7807 problem+json style response."""
        return {
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
            **({"details": self.details} if self.details else {}),
        }


class NotFoundError(AppException):
    """Resource not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ValidationError(AppException):
    """Validation failed."""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    error_code = "VALIDATION_ERROR"
    message = "Validation failed"


class ExternalServiceError(AppException):
    """External service error."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service temporarily unavailable"


class ProviderRateLimitError(ExternalServiceError):
    """A news provider signalled a rate limit; the source is off for this run."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "PROVIDER_RATE_LIMITED"
    message = "News provider rate limit reached"


class ProviderTransientError(ExternalServiceError):
    """Timeout or 5xx from a news provider."""

    error_code = "PROVIDER_UNAVAILABLE"
    message = "News provider temporarily unavailable"


class OracleResponseError(ExternalServiceError):
    """The classification/explanation oracle returned unusable output."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "ORACLE_BAD_RESPONSE"
    message = "Oracle returned a malformed response"


class JobError(AppException):
    """Job execution failed."""

    error_code = "JOB_ERROR"
    message = "Job execution failed"


def register_exception_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers."""

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request, exc: AppException
    ) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        from .config import settings
        from .logging import get_logger

        logger = get_logger("error")
        logger.exception(
            "Unhandled exception",
            extra={
                "extra_fields": {
                    "path": request.url.path,
                    "method": request.method,
                }
            },
        )

        message = str(exc) if settings.debug else "An unexpected error occurred"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": message,
                "status": 500,
            },
        )
