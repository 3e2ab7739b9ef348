"""
OpenAI async client manager with connection pooling and circuit breaker.

Provides a shared client with:
- Connection pooling via httpx
- Circuit breaker so a failing oracle stops being called for a while
- Retried JSON chat completions (tenacity)

Usage:
    data = await chat_json(
        [{"role": "system", "content": "..."}, {"role": "user", "content": "..."}],
        temperature=0.3,
    )
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import ExternalServiceError, OracleResponseError
from app.core.logging import get_logger


logger = get_logger("openai.client")

JSON_FENCE = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")


@dataclass
class CircuitBreakerState:
    """State for circuit breaker pattern."""
    failures: int = 0
    last_failure: datetime | None = None
    is_open: bool = False
    opened_at: datetime | None = None

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure = datetime.now(UTC)

    def record_success(self) -> None:
        self.failures = 0
        self.is_open = False
        self.opened_at = None

    def open_circuit(self) -> None:
        self.is_open = True
        self.opened_at = datetime.now(UTC)
        logger.warning(f"Circuit breaker opened after {self.failures} failures")

    def should_allow_request(self, timeout_seconds: int) -> bool:
        if not self.is_open:
            return True

        # Half-open: let one test request through after the timeout
        if self.opened_at:
            elapsed = (datetime.now(UTC) - self.opened_at).total_seconds()
            if elapsed >= timeout_seconds:
                logger.info("Circuit breaker half-open, allowing test request")
                return True

        return False


class OpenAIClientManager:
    """
    Owns the AsyncOpenAI client and its circuit breaker.

    get_client() returns None when no API key is configured or the breaker
    is open; callers treat that as "use the deterministic fallback".
    """

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or default_settings
        self._client: AsyncOpenAI | None = None
        self._lock = asyncio.Lock()
        self._circuit_breaker = CircuitBreakerState()
        self._http_client: httpx.AsyncClient | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.openai_api_key)

    async def get_client(self) -> AsyncOpenAI | None:
        if not self._circuit_breaker.should_allow_request(
            self._settings.openai_circuit_breaker_timeout
        ):
            logger.warning("Circuit breaker open, rejecting request")
            return None

        async with self._lock:
            if self._client is not None:
                return self._client

            if not self.is_configured:
                logger.warning("OpenAI API key not configured")
                return None

            self._http_client = httpx.AsyncClient(
                limits=httpx.Limits(
                    max_connections=self._settings.openai_max_connections,
                    max_keepalive_connections=max(1, self._settings.openai_max_connections // 2),
                ),
                timeout=httpx.Timeout(self._settings.openai_timeout, connect=10.0),
            )
            self._client = AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                http_client=self._http_client,
            )
            logger.debug("Created new OpenAI client")
            return self._client

    async def _close_client(self) -> None:
        if self._http_client:
            try:
                await self._http_client.aclose()
            except Exception as e:
                logger.debug(f"Error closing HTTP client: {e}")
            self._http_client = None
        self._client = None

    def record_success(self) -> None:
        self._circuit_breaker.record_success()

    def record_failure(self) -> None:
        self._circuit_breaker.record_failure()
        if self._circuit_breaker.failures >= self._settings.openai_circuit_breaker_threshold:
            self._circuit_breaker.open_circuit()

    def is_circuit_open(self) -> bool:
        return self._circuit_breaker.is_open

    async def close(self) -> None:
        async with self._lock:
            await self._close_client()


_manager: OpenAIClientManager | None = None


def get_client_manager() -> OpenAIClientManager:
    """Get or create the global client manager."""
    global _manager
    if _manager is None:
        _manager = OpenAIClientManager()
    return _manager


async def close_client_manager() -> None:
    global _manager
    if _manager is not None:
        await _manager.close()
        _manager = None


def parse_json_content(content: str | None) -> dict[str, Any]:
    """Parse a JSON object, falling back to a fenced ```json block.

    Raises OracleResponseError when neither yields an object.
    """
    if not content or not content.strip():
        raise OracleResponseError("Empty response from oracle")
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        match = JSON_FENCE.search(content)
        if not match:
            raise OracleResponseError("Invalid JSON response from oracle")
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            raise OracleResponseError(f"Invalid JSON in fenced block: {e}")
    if not isinstance(data, dict):
        raise OracleResponseError("Oracle response is not a JSON object")
    return data


async def chat_json(
    messages: list[dict[str, str]],
    temperature: float = 0.3,
    max_tokens: int = 1000,
    manager: OpenAIClientManager | None = None,
) -> dict[str, Any]:
    """
    JSON-mode chat completion with retries.

    Raises:
        ExternalServiceError: no client available (missing key or open breaker)
        OracleResponseError: the reply could not be parsed as a JSON object
    """
    manager = manager or get_client_manager()
    client = await manager.get_client()
    if client is None:
        raise ExternalServiceError(
            message="OpenAI client unavailable", details={"service": "openai"}
        )

    cfg = manager.settings
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(cfg.openai_max_retries),
            wait=wait_exponential_jitter(
                initial=cfg.openai_retry_delay,
                max=cfg.openai_retry_max_delay,
                jitter=1.0,
            ),
            retry=retry_if_exception_type((
                httpx.HTTPError,
                OracleResponseError,
                RuntimeError,
            )),
            reraise=True,
        ):
            with attempt:
                response = await client.chat.completions.create(
                    model=cfg.openai_model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    response_format={"type": "json_object"},
                )
                if not response.choices:
                    raise RuntimeError("No choices in oracle response")
                data = parse_json_content(response.choices[0].message.content)
    except Exception:
        manager.record_failure()
        raise

    manager.record_success()
    return data
