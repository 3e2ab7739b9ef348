"""In-process TTL cache with a capacity bound, backed by ``cachetools``.

Entries expire on read and on explicit ``sweep()``. The clock is injectable
so expiry can be tested without sleeping.
"""

from __future__ import annotations

import math
import time
from typing import Any, Callable, Hashable, Optional

from cachetools import TTLCache

from app.core.logging import get_logger

logger = get_logger("cache.memory")


class MemoryTTLCache:
    """Bounded map whose entries live for ``ttl`` seconds.

    Over capacity the least recently used entry is evicted.
    """

    def __init__(
        self,
        ttl: float,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "memory",
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self.name = name
        self._cache: TTLCache = TTLCache(
            maxsize=max_entries if max_entries is not None else math.inf,
            ttl=ttl,
            timer=clock,
        )

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._cache

    def get(self, key: Hashable) -> Optional[Any]:
        return self._cache.get(key)

    def set(self, key: Hashable, value: Any) -> None:
        self._cache[key] = value

    def delete(self, key: Hashable) -> bool:
        return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        self._cache.clear()

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        expired = list(self._cache.expire())
        if expired:
            logger.debug(f"[{self.name}] swept {len(expired)} expired entries")
        return len(expired)
