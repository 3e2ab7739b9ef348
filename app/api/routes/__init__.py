"""API routes package."""

from . import feed, health, jobs


__all__ = [
    "feed",
    "health",
    "jobs",
]
