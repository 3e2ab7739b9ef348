"""RSS adapters: Google News search feeds and direct publisher feeds."""

from __future__ import annotations

from urllib.parse import quote_plus

import feedparser
import httpx
from bs4 import BeautifulSoup

from app.core.exceptions import ProviderTransientError
from app.core.logging import get_logger
from app.pipeline.models import ArticleRecord

from .base import NewsProvider, raise_for_provider_status

logger = get_logger("news.rss")

GOOGLE_NEWS_RSS_URL = "https://news.google.com/rss/search?q={query}&hl=en-US&gl=US&ceid=US:en"

RSS_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; signalfeed/1.0)",
    "Accept": "application/rss+xml, application/xml, text/xml, */*",
}


def clean_html(text: str | None) -> str | None:
    if not text:
        return None
    cleaned = BeautifulSoup(text, "html.parser").get_text(" ", strip=True)
    return cleaned or None


def split_google_title(title: str, source_name: str | None) -> str:
    """Google News appends ' - Publisher' to every headline."""
    if source_name and title.endswith(f" - {source_name}"):
        return title[: -len(source_name) - 3].strip()
    return title


def transform_entry(entry, feed_source: str, default_source: str | None = None) -> ArticleRecord:
    source = entry.get("source") or {}
    source_name = source.get("title") or default_source
    title = entry.get("title") or ""
    if feed_source == "googlerss":
        title = split_google_title(title, source_name)
    description = clean_html(entry.get("summary"))
    return ArticleRecord(
        url=entry.get("link"),
        title=title,
        description=description,
        content=description,
        source_name=source_name,
        author=entry.get("author"),
        published_at=entry.get("published") or entry.get("updated"),
        feed_source=feed_source,
    )


async def _get_feed(name: str, client: httpx.AsyncClient, url: str):
    try:
        response = await client.get(url, headers=RSS_HEADERS, follow_redirects=True)
    except httpx.TimeoutException as e:
        raise ProviderTransientError(
            message=f"{name} timed out", details={"provider": name}
        ) from e
    except httpx.TransportError as e:
        raise ProviderTransientError(
            message=f"{name} unreachable: {e}", details={"provider": name}
        ) from e
    raise_for_provider_status(name, response)
    parsed = feedparser.parse(response.text)
    if parsed.bozo and not parsed.entries:
        logger.warning(f"{name}: unparseable feed at {url}")
    return parsed


class GoogleNewsRSSProvider(NewsProvider):
    """Search feed; links are news.google.com redirects resolved at ingest."""

    name = "googlerss"

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def fetch(self, query: str, limit: int) -> list[ArticleRecord]:
        if limit <= 0:
            return []
        parsed = await _get_feed(
            self.name, self._client, GOOGLE_NEWS_RSS_URL.format(query=quote_plus(query))
        )
        return [transform_entry(entry, self.name) for entry in parsed.entries[:limit]]


class DirectRSSProvider(NewsProvider):
    """A publisher feed with direct article links; the query is ignored."""

    rate_limited = False
    searchable = False

    def __init__(self, client: httpx.AsyncClient, source_name: str, feed_url: str):
        self._client = client
        self.source_name = source_name
        self.feed_url = feed_url
        self.name = source_name.lower().replace(" ", "")

    @classmethod
    def from_spec(cls, client: httpx.AsyncClient, spec: str) -> "DirectRSSProvider":
        """Build from a ``Name|url`` configuration entry."""
        name, _, url = spec.partition("|")
        return cls(client, name.strip(), url.strip())

    async def fetch(self, query: str, limit: int) -> list[ArticleRecord]:
        if limit <= 0:
            return []
        parsed = await _get_feed(self.name, self._client, self.feed_url)
        return [
            transform_entry(entry, self.name, default_source=self.source_name)
            for entry in parsed.entries[:limit]
        ]
