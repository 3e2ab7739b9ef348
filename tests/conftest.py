"""Pytest configuration and fixtures.

Persistence is faked with ``InMemoryStore`` so no database is needed; it
applies the same merge and conditional-transition rules as the SQL store.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from app.pipeline.merge import merge_article
from app.pipeline.models import Article, ArticleRecord, Holding, StageOutcome
from app.pipeline.status import ArticleStatus, Stage, get_rule
from app.pipeline.store import UpsertResult, decision_values
from app.pipeline.story_groups import StoryGroupDraft
from app.pipeline.transitions import apply_outcome
from app.services.news.base import NewsProvider
from app.services.news.fetcher import FetchedContent


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryStore:
    """ArticleStore over plain dicts."""

    def __init__(self, holdings: list[Holding] | None = None):
        self.articles: dict[str, Article] = {}
        self.holdings = list(holdings or [])
        self.decisions: list[dict[str, Any]] = []
        self.story_groups: dict[tuple, dict[str, Any]] = {}
        self.fail_urls: set[str] = set()

    async def upsert_records(self, records: list[ArticleRecord]) -> UpsertResult:
        result = UpsertResult()
        for record in records:
            if record.url in self.fail_urls:
                result.failed += 1
                continue
            existing = self.articles.get(record.url)
            self.articles[record.url] = merge_article(existing, record)
            if existing is None:
                result.inserted += 1
            else:
                result.merged += 1
        return result

    async def select_for_stage(self, stage: Stage, limit: int) -> list[Article]:
        rule = get_rule(stage)
        eligible = [a for a in self.articles.values() if rule.is_eligible(a)]
        def order(article: Article) -> tuple:
            value = getattr(article, rule.order_by)
            return (value is not None, value or 0)

        eligible.sort(key=order, reverse=True)
        return eligible[:limit]

    async def apply_outcome(self, outcome: StageOutcome) -> bool:
        current = self.articles.get(outcome.url)
        if current is None:
            return False
        updated = apply_outcome(current, outcome)
        if updated is None:
            return False
        self.articles[outcome.url] = updated
        if outcome.status is not None:
            self.decisions.append(decision_values(current, outcome))
        return True

    async def list_holdings(self, user_id: int) -> list[Holding]:
        return [h for h in self.holdings if h.user_id == user_id]

    async def save_story_group(
        self, draft: StoryGroupDraft, explanation: dict[str, Any] | None
    ) -> int:
        key = (draft.scope, draft.primary_ticker or "", draft.date_bucket, draft.group_title)
        group = self.story_groups.get(key)
        if group is None:
            group = self.story_groups[key] = {
                "id": len(self.story_groups) + 1,
                "draft": draft,
                "explanation": None,
                "members": {},
                "related": {},
            }
        else:
            group["draft"] = draft
        if explanation is not None:
            group["explanation"] = explanation
        for url, similarity in draft.members:
            group["members"].setdefault(url, similarity)
        for ticker, kind in draft.related_tickers:
            group["related"].setdefault(ticker, kind)
        return group["id"]

    async def list_feed(self, limit: int) -> list[Article]:
        shown = [
            a for a in self.articles.values()
            if a.status == ArticleStatus.RANKED and a.shown_to_user
        ]
        shown.sort(key=lambda a: a.final_rank_score or 0, reverse=True)
        return shown[:limit]


class FakeProvider(NewsProvider):
    """Provider returning canned records, or raising a canned error."""

    rate_limited = False

    def __init__(
        self,
        name: str,
        records: list[ArticleRecord] | None = None,
        error: Exception | None = None,
        searchable: bool = True,
    ):
        self.name = name
        self.records = list(records or [])
        self.error = error
        self.searchable = searchable
        self.calls: list[tuple[str, int]] = []

    async def fetch(self, query: str, limit: int) -> list[ArticleRecord]:
        self.calls.append((query, limit))
        if self.error is not None:
            raise self.error
        return [r.model_copy() for r in self.records[:limit]]


class FakeFetcher:
    """Fetcher returning fixed text, or raising for listed URLs."""

    def __init__(self, text: str = "", canonical_url: str | None = None, fail: bool = False):
        self.text = text
        self.canonical_url = canonical_url
        self.fail = fail
        self.calls: list[str] = []

    async def fetch(self, url: str) -> FetchedContent:
        self.calls.append(url)
        if self.fail:
            raise ConnectionError("connection reset")
        return FetchedContent(clean_text=self.text, canonical_url=self.canonical_url)


def make_article(**overrides: Any) -> Article:
    """Article with sensible defaults; any field can be overridden."""
    values: dict[str, Any] = {
        "url": "https://reuters.com/markets/apple-earnings",
        "title": "Apple reports record quarterly earnings as iPhone sales beat forecasts",
        "description": "Apple posted revenue growth driven by strong iPhone demand.",
        "source_name": "Reuters",
        "published_at": BASE_TIME,
        "searched_by": "AAPL",
    }
    values.update(overrides)
    return Article(**values)


def make_record(url: str, title: str, **overrides: Any) -> ArticleRecord:
    values: dict[str, Any] = {
        "url": url,
        "title": title,
        "description": f"{title} - details",
        "source_name": "Reuters",
        "published_at": BASE_TIME,
    }
    values.update(overrides)
    return ArticleRecord(**values)


LONG_TEXT = (
    "Apple reported quarterly revenue that beat analyst expectations, with growth in "
    "services and a record quarter for iPhone sales in several regions. Executives "
    "pointed to strong demand and raised their outlook for the coming quarter. "
) * 5


@pytest.fixture
def holdings() -> list[Holding]:
    return [
        Holding(ticker="AAPL", label="Apple", user_id=1, id=1),
        Holding(ticker="MSFT", label="Microsoft", user_id=1, id=2),
    ]


@pytest.fixture
def store(holdings) -> InMemoryStore:
    return InMemoryStore(holdings)


@pytest.fixture
def article_factory():
    return make_article


@pytest.fixture
def long_text() -> str:
    return LONG_TEXT


@pytest.fixture
def later():
    """Timestamps after BASE_TIME, one hour apart."""
    return lambda hours: BASE_TIME + timedelta(hours=hours)
