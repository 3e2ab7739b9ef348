"""Per-run provider bookkeeping: rate-limit disabling, backoff and spacing.

Usage:
    registry = SourceRegistry([GNewsProvider(client), NewsAPIProvider(client)])
    registry.reset_run()
    records = await registry.fetch_all("AAPL stock", {"gnews": 5}, tag="AAPL")
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx

from app.core.config import settings
from app.core.exceptions import ProviderRateLimitError, ProviderTransientError
from app.core.logging import get_logger
from app.pipeline.models import ArticleRecord

from .base import NewsProvider
from .gnews import GNewsProvider
from .newsapi import NewsAPIProvider
from .rss import DirectRSSProvider, GoogleNewsRSSProvider

logger = get_logger("news.registry")


def next_backoff(current: float, base: float, cap: float) -> float:
    """Double the delay after a transient failure, starting at base."""
    if current <= 0:
        return min(base, cap)
    return min(current * 2, cap)


@dataclass
class SourceState:
    """Mutable state for one provider."""

    disabled: bool = False
    backoff: float = 0.0
    last_call: float | None = None
    failures: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SourceRegistry:
    """Holds the configured providers and their per-run state."""

    def __init__(
        self,
        providers: list[NewsProvider],
        request_delay: float | None = None,
        backoff_base: float | None = None,
        backoff_max: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.providers = list(providers)
        self.request_delay = (
            settings.provider_request_delay if request_delay is None else request_delay
        )
        self.backoff_base = (
            settings.backoff_base_seconds if backoff_base is None else backoff_base
        )
        self.backoff_max = (
            settings.backoff_max_seconds if backoff_max is None else backoff_max
        )
        self._sleep = sleep
        self._states: dict[str, SourceState] = {p.name: SourceState() for p in providers}

    def state(self, name: str) -> SourceState:
        return self._states[name]

    def get(self, name: str) -> NewsProvider | None:
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None

    def reset_run(self) -> None:
        """Re-enable rate-limited sources at the start of a run.

        Backoff delays survive so a struggling source keeps being spaced out.
        """
        for name, state in self._states.items():
            if state.disabled:
                logger.info(f"Source {name} re-enabled for new run")
            state.disabled = False

    def is_disabled(self, name: str) -> bool:
        return self._states[name].disabled

    @property
    def disabled_sources(self) -> list[str]:
        return [name for name, state in self._states.items() if state.disabled]

    def _wait_time(self, provider: NewsProvider, state: SourceState) -> float:
        wait = state.backoff
        if provider.rate_limited and state.last_call is not None:
            since = time.monotonic() - state.last_call
            wait += max(0.0, self.request_delay - since)
        return wait

    async def fetch(
        self, provider: NewsProvider, query: str, limit: int, tag: str | None = None
    ) -> list[ArticleRecord]:
        """Call one provider, absorbing its failures into an empty result."""
        state = self._states[provider.name]
        if state.disabled or limit <= 0:
            return []

        async with state.lock:
            if state.disabled:
                return []
            wait = self._wait_time(provider, state)
            if wait > 0:
                await self._sleep(wait)
            try:
                records = await provider.fetch(query, limit)
            except ProviderRateLimitError as e:
                state.disabled = True
                logger.warning(f"Source {provider.name} disabled for this run: {e.message}")
                return []
            except ProviderTransientError as e:
                state.failures += 1
                state.backoff = next_backoff(state.backoff, self.backoff_base, self.backoff_max)
                logger.warning(
                    f"Source {provider.name} transient failure, backoff now {state.backoff:.1f}s: {e.message}"
                )
                return []
            except Exception as e:
                state.failures += 1
                logger.warning(f"Source {provider.name} failed for '{query}': {e}")
                return []
            finally:
                state.last_call = time.monotonic()

            state.backoff = 0.0

        return [
            record.model_copy(
                update={
                    "feed_source": record.feed_source or provider.name,
                    "searched_by": tag,
                }
            )
            for record in records
        ]

    async def fetch_all(
        self,
        query: str,
        limits: dict[str, int],
        tag: str | None = None,
        providers: list[NewsProvider] | None = None,
    ) -> list[ArticleRecord]:
        """Fan out one query to providers; results keep provider order."""
        targets = [
            p for p in (providers or self.providers) if limits.get(p.name, 0) > 0
        ]
        results = await asyncio.gather(
            *(self.fetch(p, query, limits[p.name], tag) for p in targets)
        )
        return [record for batch in results for record in batch]


def build_registry(client: httpx.AsyncClient) -> SourceRegistry:
    """Registry for the configured search sources plus direct feeds."""
    factories = {
        "gnews": GNewsProvider,
        "newsapi": NewsAPIProvider,
        "googlerss": GoogleNewsRSSProvider,
    }
    providers: list[NewsProvider] = [
        factories[name](client) for name in settings.enabled_sources if name in factories
    ]
    providers.extend(DirectRSSProvider.from_spec(client, spec) for spec in settings.direct_feeds)
    return SourceRegistry(providers)
