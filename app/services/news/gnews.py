"""GNews search adapter."""

from __future__ import annotations

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.pipeline.models import ArticleRecord

from .base import NewsProvider, get_json

logger = get_logger("news.gnews")

GNEWS_SEARCH_URL = "https://gnews.io/api/v4/search"


def transform_gnews_article(item: dict) -> ArticleRecord:
    source = item.get("source") or {}
    return ArticleRecord(
        url=item.get("url"),
        title=item.get("title"),
        description=item.get("description"),
        content=item.get("content"),
        source_name=source.get("name"),
        published_at=item.get("publishedAt"),
        feed_source="gnews",
    )


class GNewsProvider(NewsProvider):
    name = "gnews"

    def __init__(self, client: httpx.AsyncClient, api_key: str | None = None):
        self._client = client
        self._api_key = api_key if api_key is not None else settings.gnews_api_key

    async def fetch(self, query: str, limit: int) -> list[ArticleRecord]:
        if not self._api_key or limit <= 0:
            return []
        data = await get_json(
            self.name,
            self._client,
            GNEWS_SEARCH_URL,
            {
                "q": query,
                "lang": "en",
                "max": min(limit, 100),
                "sortby": "publishedAt",
                "apikey": self._api_key,
            },
        )
        items = data.get("articles") or []
        logger.debug(f"GNews returned {len(items)} articles for '{query}'")
        return [transform_gnews_article(item) for item in items[:limit]]
