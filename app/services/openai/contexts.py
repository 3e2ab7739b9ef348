"""
Typed inputs for oracle tasks.

These dataclasses are what prompt builders and the fallback generator read;
the pipeline converts its own rows into them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RawArticle:
    """One source article backing an event."""
    source: str | None = None
    title: str | None = None
    description: str | None = None
    body: str | None = None


@dataclass
class ExplanationEvent:
    """A story group as the explanation oracle sees it."""
    id: str
    title: str | None = None
    short_summary: str | None = None
    ticker_summary: str | None = None
    impact_level: str = "medium"  # low, medium, high
    scope_type: str = "market"  # event type: macro, regulation, earnings, ...
    relevance_type: str | None = None
    profile_tier: str | None = None
    raw_articles: list[RawArticle] = field(default_factory=list)


@dataclass
class ClassificationContext:
    """Full-text article for the classification task."""
    title: str
    clean_text: str
    searched_by: str | None = None
