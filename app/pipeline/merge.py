"""Upsert merge policy for ingested articles.

Re-ingesting a known URL may only widen what we know about it: tags are
unioned, the earliest publication time wins, blank text is filled in, and
nothing a later stage derived is ever touched.
"""

from __future__ import annotations

from datetime import datetime

from .models import Article, ArticleRecord, join_tags
from .status import ArticleStatus


# Columns an ingestion upsert is allowed to write on an existing row
INGEST_FIELDS = (
    "title",
    "description",
    "content",
    "source_name",
    "author",
    "published_at",
    "searched_by",
    "feed_source",
    "canonical_url",
    "original_url",
    "final_url",
    "scrape_count",
)


def _earliest(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def _filled(current: str | None, incoming: str | None) -> str | None:
    """Prefer a non-empty incoming value, otherwise keep what we have."""
    if incoming and incoming.strip():
        return incoming
    return current


def merge_records(first: ArticleRecord, second: ArticleRecord) -> ArticleRecord:
    """Combine two provider records for the same URL seen in one run."""
    return first.model_copy(
        update={
            "searched_by": join_tags(first.searched_by, second.searched_by),
            "published_at": _earliest(first.published_at, second.published_at),
            "description": first.description or second.description,
            "content": first.content or second.content,
            "author": first.author or second.author,
            "source_name": first.source_name or second.source_name,
            "feed_source": first.feed_source or second.feed_source,
        }
    )


def dedupe_records(records: list[ArticleRecord]) -> list[ArticleRecord]:
    """Deduplicate by URL keeping first-seen order and unioning tags."""
    by_url: dict[str, ArticleRecord] = {}
    for record in records:
        if not record.url:
            continue
        if record.url in by_url:
            by_url[record.url] = merge_records(by_url[record.url], record)
        else:
            by_url[record.url] = record
    return list(by_url.values())


def merge_article(existing: Article | None, incoming: ArticleRecord) -> Article:
    """Return the row to store for ``incoming`` given what is already stored."""
    if existing is None:
        return Article(
            url=incoming.url or "",
            title=incoming.title or "",
            canonical_url=incoming.url,
            original_url=incoming.original_url or incoming.url,
            final_url=incoming.final_url or incoming.url,
            source_name=incoming.source_name,
            feed_source=incoming.feed_source,
            author=incoming.author,
            description=incoming.description,
            content=incoming.content,
            published_at=incoming.published_at,
            searched_by=join_tags(incoming.searched_by),
            scrape_count=1,
            status=ArticleStatus.PENDING,
        )

    return existing.copy(
        description=_filled(existing.description, incoming.description),
        content=_filled(existing.content, incoming.content),
        published_at=_earliest(existing.published_at, incoming.published_at),
        searched_by=join_tags(existing.searched_by, incoming.searched_by),
        feed_source=existing.feed_source or incoming.feed_source,
        author=existing.author or incoming.author,
        source_name=existing.source_name or incoming.source_name,
        scrape_count=(existing.scrape_count or 0) + 1,
    )


def ingest_values(article: Article) -> dict:
    """Column values an upsert writes for ``article``."""
    return {name: getattr(article, name) for name in INGEST_FIELDS}
