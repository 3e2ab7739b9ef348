"""Caches: in-process TTL map and the explanation cache backends."""

from .client import close_valkey_client, get_valkey_client, valkey_healthcheck
from .explanations import (
    ExplanationCache,
    MemoryExplanationCache,
    ValkeyExplanationCache,
    explanation_cache_key,
    get_explanation_cache,
)
from .memory import MemoryTTLCache


__all__ = [
    "ExplanationCache",
    "MemoryExplanationCache",
    "MemoryTTLCache",
    "ValkeyExplanationCache",
    "close_valkey_client",
    "explanation_cache_key",
    "get_explanation_cache",
    "get_valkey_client",
    "valkey_healthcheck",
]
