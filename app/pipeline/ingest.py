"""Ingestion: collect the three source buckets, clean URLs, dedupe, upsert.

Buckets:
    holdings  one query per holding, tagged with the ticker
    macro     configured market-wide queries, tagged MACRO, capped per run
    feeds     fixed publisher RSS feeds, tagged FEED

Queries run one after another; the providers for a single query fan out
concurrently and each provider spaces out its own calls.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from app.core.config import settings
from app.core.logging import get_logger
from app.services.news.registry import SourceRegistry
from app.services.news.urls import RedirectResolver, normalize_url

from .merge import dedupe_records
from .models import TAG_FEED, TAG_MACRO, ArticleRecord, Holding
from .store import ArticleStore, UpsertResult

logger = get_logger("pipeline.ingest")


NOTE_WORD = re.compile(r"[A-Za-z0-9]{3,}")
MAX_NOTE_WORDS = 3


def build_holding_query(holding: Holding) -> str:
    """``TICKER OR label OR <note words> stock``."""
    terms = [holding.ticker.upper()]
    label = (holding.label or "").strip()
    if label and label.upper() != holding.ticker.upper():
        terms.append(label)
    words = NOTE_WORD.findall(holding.notes or "")[:MAX_NOTE_WORDS]
    if words:
        terms.append(" ".join(words))
    return " OR ".join(terms) + " stock"


@dataclass
class IngestResult:
    collected: int = 0
    holdings: int = 0
    macro: int = 0
    feeds: int = 0
    skipped: int = 0
    unique: int = 0
    inserted: int = 0
    merged: int = 0
    failed: int = 0

    @property
    def stored(self) -> int:
        return self.inserted + self.merged


class Ingestor:
    def __init__(
        self,
        registry: SourceRegistry,
        store: ArticleStore,
        resolver: RedirectResolver | None = None,
    ):
        self.registry = registry
        self.store = store
        self.resolver = resolver or RedirectResolver()

    @property
    def search_providers(self):
        return [p for p in self.registry.providers if p.searchable]

    @property
    def feed_providers(self):
        return [p for p in self.registry.providers if not p.searchable]

    async def collect_holdings(self, holdings: list[Holding]) -> list[ArticleRecord]:
        limits = {p.name: settings.holdings_source_limit for p in self.search_providers}
        records: list[ArticleRecord] = []
        for holding in holdings:
            query = build_holding_query(holding)
            found = await self.registry.fetch_all(
                query, limits, tag=holding.ticker.upper(), providers=self.search_providers
            )
            logger.debug(f"Holding {holding.ticker}: {len(found)} records for '{query}'")
            records.extend(found)
        return records

    async def collect_macro(self) -> list[ArticleRecord]:
        per_query = settings.macro_query_limit
        limits = {p.name: per_query for p in self.search_providers}
        records: list[ArticleRecord] = []
        for query in settings.macro_queries:
            records.extend(
                await self.registry.fetch_all(
                    query, limits, tag=TAG_MACRO, providers=self.search_providers
                )
            )
        if len(records) > settings.macro_cap:
            logger.info(f"Macro bucket capped at {settings.macro_cap} of {len(records)} records")
            records = records[: settings.macro_cap]
        return records

    async def collect_feeds(self) -> list[ArticleRecord]:
        records: list[ArticleRecord] = []
        for provider in self.feed_providers:
            records.extend(
                await self.registry.fetch(provider, "", settings.direct_feed_limit, tag=TAG_FEED)
            )
        return records

    async def clean(self, record: ArticleRecord) -> ArticleRecord | None:
        """Resolve redirects and normalize the URL; None when unusable."""
        if not record.is_usable:
            return None
        original = record.url
        resolved = await self.resolver.resolve(original)
        return record.model_copy(
            update={
                "url": normalize_url(resolved),
                "original_url": original,
                "final_url": resolved,
            }
        )

    async def run(self, holdings: list[Holding]) -> IngestResult:
        result = IngestResult()
        self.registry.reset_run()

        holding_records = await self.collect_holdings(holdings)
        macro_records = await self.collect_macro()
        feed_records = await self.collect_feeds()
        result.holdings = len(holding_records)
        result.macro = len(macro_records)
        result.feeds = len(feed_records)

        raw = holding_records + macro_records + feed_records
        result.collected = len(raw)

        cleaned: list[ArticleRecord] = []
        for record in raw:
            try:
                item = await self.clean(record)
            except Exception as e:
                logger.warning(f"Skipping record {record.url}: {e}")
                item = None
            if item is None:
                result.skipped += 1
            else:
                cleaned.append(item)

        unique = dedupe_records(cleaned)
        result.unique = len(unique)

        upserted: UpsertResult = await self.store.upsert_records(unique)
        result.inserted = upserted.inserted
        result.merged = upserted.merged
        result.failed = upserted.failed
        return result

