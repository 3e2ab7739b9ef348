"""Explanation cache keyed by (event id, sorted holdings).

Two interchangeable backends:
    MemoryExplanationCache  - process-local map, expiry on read + periodic sweep
    ValkeyExplanationCache  - shared Valkey keys with server-side expiry

Usage:
    cache = get_explanation_cache()
    payload = await cache.get("evt-1", ["MSFT", "AAPL"])
    if payload is None:
        await cache.set("evt-1", ["MSFT", "AAPL"], generated)
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional, Protocol

from app.core.config import settings
from app.core.logging import get_logger

from .client import get_valkey_client
from .memory import MemoryTTLCache

logger = get_logger("cache.explanations")

CACHE_PREFIX = "signalfeed"
CACHE_VERSION = "v1"


def explanation_cache_key(event_id: str, holdings: Iterable[str]) -> str:
    """``event_id||A,B`` with holdings upper-cased and sorted."""
    tickers = sorted({h.strip().upper() for h in holdings if h and h.strip()})
    return f"{event_id}||{','.join(tickers)}"


def _serialize(value: Any) -> str:
    return json.dumps(value, default=str)


def _deserialize(value: str) -> Any:
    return json.loads(value)


class ExplanationCache(Protocol):
    async def get(self, event_id: str, holdings: Iterable[str]) -> Optional[dict]: ...

    async def set(self, event_id: str, holdings: Iterable[str], payload: dict) -> None: ...

    async def sweep(self) -> int: ...


class MemoryExplanationCache:
    """Process-local backend."""

    def __init__(self, ttl: int | None = None, store: MemoryTTLCache | None = None):
        self._store = store or MemoryTTLCache(
            ttl=ttl or settings.explanation_cache_ttl, name="explanations"
        )

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, event_id: str, holdings: Iterable[str]) -> Optional[dict]:
        return self._store.get(explanation_cache_key(event_id, holdings))

    async def set(self, event_id: str, holdings: Iterable[str], payload: dict) -> None:
        self._store.set(explanation_cache_key(event_id, holdings), payload)

    async def sweep(self) -> int:
        return self._store.sweep()


class ValkeyExplanationCache:
    """Shared backend; Valkey expires keys itself so sweep is a no-op."""

    def __init__(self, ttl: int | None = None):
        self.ttl = ttl or settings.explanation_cache_ttl

    def _key(self, event_id: str, holdings: Iterable[str]) -> str:
        return f"{CACHE_PREFIX}:{CACHE_VERSION}:explanation:{explanation_cache_key(event_id, holdings)}"

    async def get(self, event_id: str, holdings: Iterable[str]) -> Optional[dict]:
        client = await get_valkey_client()
        key = self._key(event_id, holdings)
        try:
            value = await client.get(key)
        except Exception as e:
            logger.warning(f"Explanation cache get failed: {e}")
            return None
        return _deserialize(value) if value is not None else None

    async def set(self, event_id: str, holdings: Iterable[str], payload: dict) -> None:
        client = await get_valkey_client()
        try:
            await client.set(self._key(event_id, holdings), _serialize(payload), ex=self.ttl)
        except Exception as e:
            logger.warning(f"Explanation cache set failed: {e}")

    async def sweep(self) -> int:
        return 0


_cache: ExplanationCache | None = None


def get_explanation_cache() -> ExplanationCache:
    """Process-wide cache for the configured backend."""
    global _cache
    if _cache is None:
        if settings.explanation_cache_backend == "valkey":
            _cache = ValkeyExplanationCache()
        else:
            _cache = MemoryExplanationCache()
    return _cache
