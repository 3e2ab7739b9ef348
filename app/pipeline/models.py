"""Pipeline data types.

``ArticleRecord`` is what a provider hands back: every field optional and
untrusted. ``Article`` is the stored row as the stages see it, and
``StageOutcome`` is what a stage asks the store to write.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from .status import ArticleStatus, Stage


TAG_MACRO = "MACRO"
TAG_FEED = "FEED"
NON_HOLDING_TAGS = frozenset({TAG_MACRO, TAG_FEED})


def split_tags(value: str | None) -> list[str]:
    """Split a comma-joined searched_by value, keeping first-seen order."""
    if not value:
        return []
    tags: list[str] = []
    for part in value.split(","):
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def join_tags(*values: str | None) -> str | None:
    """Union of tag lists in first-seen order."""
    merged: list[str] = []
    for value in values:
        for tag in split_tags(value):
            if tag not in merged:
                merged.append(tag)
    return ",".join(merged) or None


class ArticleRecord(BaseModel):
    """Normalized provider output."""

    model_config = ConfigDict(str_strip_whitespace=True)

    url: str | None = None
    title: str | None = None
    description: str | None = None
    content: str | None = None
    source_name: str | None = None
    author: str | None = None
    published_at: datetime | None = None
    feed_source: str | None = None
    searched_by: str | None = None
    original_url: str | None = None
    final_url: str | None = None

    @field_validator("published_at", mode="before")
    @classmethod
    def parse_published_at(cls, v):
        # Providers send ISO strings, RFC 822 dates or garbage
        if v in (None, ""):
            return None
        parsed: datetime | None = None
        if isinstance(v, datetime):
            parsed = v
        elif isinstance(v, str):
            try:
                parsed = datetime.fromisoformat(v.replace("Z", "+00:00"))
            except ValueError:
                try:
                    parsed = parsedate_to_datetime(v)
                except (TypeError, ValueError):
                    return None
        if parsed is not None and parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @property
    def is_usable(self) -> bool:
        return bool(self.url and self.title)


@dataclass
class Holding:
    """A tracked position that drives targeted queries and relevance boosts."""

    ticker: str
    label: str | None = None
    notes: str | None = None
    user_id: int = 1
    id: int | None = None

    @classmethod
    def from_orm(cls, row: Any) -> "Holding":
        return cls(
            id=row.id,
            user_id=row.user_id,
            ticker=row.ticker,
            label=row.label,
            notes=row.notes,
        )


@dataclass
class Article:
    """A stored article as seen by the pipeline stages."""

    url: str
    title: str = ""
    canonical_url: str | None = None
    original_url: str | None = None
    final_url: str | None = None
    source_name: str | None = None
    feed_source: str | None = None
    author: str | None = None
    description: str | None = None
    content: str | None = None
    published_at: datetime | None = None
    searched_by: str | None = None
    scrape_count: int = 1

    status: ArticleStatus = ArticleStatus.PENDING
    status_reason: str | None = None
    title_filtered_at: datetime | None = None
    content_fetched_at: datetime | None = None
    llm_processed_at: datetime | None = None
    personalized_at: datetime | None = None
    ranked_at: datetime | None = None
    discarded_at: datetime | None = None
    fetch_attempts: int = 0
    llm_attempts: int = 0
    last_error: str | None = None

    # Triage
    title_relevance: int | None = None
    title_event_type: str | None = None
    title_reason_short: str | None = None
    title_ticker_matches: list[str] = field(default_factory=list)
    title_sector_matches: list[str] = field(default_factory=list)
    likely_impact: int | None = None

    # Fetch
    clean_text: str | None = None
    content_length: int | None = None

    # Classification
    event_type: str | None = None
    impact_score: int | None = None
    sentiment: float | None = None
    sentiment_label: str | None = None
    risk_score: int | None = None
    opportunity_score: int | None = None
    volatility_score: int | None = None
    matched_tickers: list[str] = field(default_factory=list)
    matched_sectors: list[str] = field(default_factory=list)

    # Personalization
    matched_holdings: list[str] = field(default_factory=list)
    holding_relevance_score: int | None = None
    profile_adjusted_score: int | None = None
    profile_type_cached: str | None = None
    exposure_level: str | None = None

    # Ranking
    final_rank_score: int | None = None
    cluster_id: str | None = None
    is_primary_in_cluster: bool = False
    shown_to_user: bool = False

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def tags(self) -> list[str]:
        return split_tags(self.searched_by)

    @property
    def is_macro_bucket(self) -> bool:
        """True when no holding query found this article."""
        tags = self.tags
        return bool(tags) and all(tag in NON_HOLDING_TAGS for tag in tags)

    @property
    def fetch_url(self) -> str:
        return self.final_url or self.url

    def copy(self, **changes: Any) -> "Article":
        return replace(self, **changes)

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_orm(cls, row: Any) -> "Article":
        values = {name: getattr(row, name) for name in cls.field_names()}
        values["status"] = ArticleStatus(values["status"])
        for name in (
            "title_ticker_matches",
            "title_sector_matches",
            "matched_tickers",
            "matched_sectors",
            "matched_holdings",
        ):
            values[name] = list(values[name] or [])
        values["is_primary_in_cluster"] = bool(values["is_primary_in_cluster"])
        values["shown_to_user"] = bool(values["shown_to_user"])
        return cls(**values)


@dataclass
class StageOutcome:
    """Result of running one stage over one article.

    ``status`` is the state to move to, or None to leave the row where it is
    (a retryable failure that only bumps counters).
    """

    stage: Stage
    url: str
    updates: dict[str, Any] = field(default_factory=dict)
    status: ArticleStatus | None = None
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status is not None and self.status != ArticleStatus.DISCARDED

    @property
    def discarded(self) -> bool:
        return self.status == ArticleStatus.DISCARDED
