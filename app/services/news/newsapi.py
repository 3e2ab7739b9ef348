"""NewsAPI ``/v2/everything`` adapter."""

from __future__ import annotations

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.pipeline.models import ArticleRecord

from .base import NewsProvider, get_json

logger = get_logger("news.newsapi")

NEWSAPI_EVERYTHING_URL = "https://newsapi.org/v2/everything"

# NewsAPI blanks out takedowns instead of dropping them
REMOVED_MARKER = "[Removed]"


def transform_newsapi_article(item: dict) -> ArticleRecord | None:
    if item.get("title") == REMOVED_MARKER:
        return None
    source = item.get("source") or {}
    return ArticleRecord(
        url=item.get("url"),
        title=item.get("title"),
        description=item.get("description"),
        content=item.get("content"),
        source_name=source.get("name"),
        author=item.get("author"),
        published_at=item.get("publishedAt"),
        feed_source="newsapi",
    )


class NewsAPIProvider(NewsProvider):
    name = "newsapi"

    def __init__(self, client: httpx.AsyncClient, api_key: str | None = None):
        self._client = client
        self._api_key = api_key if api_key is not None else settings.newsapi_api_key

    async def fetch(self, query: str, limit: int) -> list[ArticleRecord]:
        if not self._api_key or limit <= 0:
            return []
        data = await get_json(
            self.name,
            self._client,
            NEWSAPI_EVERYTHING_URL,
            {
                "q": query,
                "language": "en",
                "sortBy": "publishedAt",
                "pageSize": min(limit, 100),
                "apiKey": self._api_key,
            },
        )
        if data.get("status") == "error":
            message = data.get("message", "")
            logger.warning(f"NewsAPI error for '{query}': {message}")
            return []
        records = [transform_newsapi_article(item) for item in data.get("articles") or []]
        return [record for record in records if record is not None][:limit]
