"""Fetch stage: download the article page and keep its readable text."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from app.core.config import settings
from app.core.logging import get_logger
from app.services.news.fetcher import FetchedContent, is_boilerplate
from app.services.news.urls import normalize_url

from .models import Article, StageOutcome
from .status import ArticleStatus, Stage

logger = get_logger("pipeline.fetch")


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchedContent: ...


@dataclass
class ContentFetchStage:
    fetcher: Fetcher
    max_attempts: int | None = None
    min_chars: int | None = None

    def __post_init__(self):
        if self.max_attempts is None:
            self.max_attempts = settings.fetch_max_attempts
        if self.min_chars is None:
            self.min_chars = settings.fetch_min_content_chars

    def _discard(self, article: Article, attempts: int, reason: str, **updates) -> StageOutcome:
        return StageOutcome(
            stage=Stage.FETCH,
            url=article.url,
            updates={"fetch_attempts": attempts, **updates},
            status=ArticleStatus.DISCARDED,
            reason=reason,
        )

    async def run(self, article: Article) -> StageOutcome:
        if article.fetch_attempts >= self.max_attempts:
            return self._discard(
                article,
                article.fetch_attempts,
                f"Fetch failed after {article.fetch_attempts} attempts",
            )

        attempts = article.fetch_attempts + 1
        try:
            content = await self.fetcher.fetch(article.fetch_url)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"[:500]
            logger.warning(f"Fetch attempt {attempts} failed for {article.fetch_url}: {error}")
            if attempts >= self.max_attempts:
                return self._discard(
                    article, attempts, f"Fetch failed after {attempts} attempts", last_error=error
                )
            # Stay in title_filtered; the next run retries
            return StageOutcome(
                stage=Stage.FETCH,
                url=article.url,
                updates={"fetch_attempts": attempts, "last_error": error},
            )

        if content.length < self.min_chars:
            return self._discard(
                article,
                attempts,
                f"Content too short: {content.length} < {self.min_chars}",
                content_length=content.length,
            )
        if is_boilerplate(content.clean_text):
            return self._discard(
                article, attempts, "Boilerplate content", content_length=content.length
            )

        canonical = article.canonical_url
        if content.canonical_url and content.canonical_url.startswith(("http://", "https://")):
            canonical = normalize_url(content.canonical_url)

        return StageOutcome(
            stage=Stage.FETCH,
            url=article.url,
            updates={
                "fetch_attempts": attempts,
                "clean_text": content.clean_text,
                "content_length": content.length,
                "canonical_url": canonical,
                "last_error": None,
            },
            status=ArticleStatus.CONTENT_FETCHED,
        )
