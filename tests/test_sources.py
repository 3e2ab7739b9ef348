"""Tests for news provider adapters, page fetching and redirect resolution.

Upstream HTTP is served by ``httpx.MockTransport``.
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from app.core.exceptions import ProviderRateLimitError, ProviderTransientError
from app.services.news.fetcher import ContentFetcher
from app.services.news.gnews import GNewsProvider
from app.services.news.newsapi import NewsAPIProvider
from app.services.news.rss import DirectRSSProvider, GoogleNewsRSSProvider, split_google_title
from app.services.news.urls import RedirectResolver


GOOGLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Google News</title>
<item>
  <title>Apple beats estimates - Reuters</title>
  <link>https://news.google.com/rss/articles/abc</link>
  <description>&lt;a href="https://news.google.com/rss/articles/abc"&gt;Apple beats estimates&lt;/a&gt;</description>
  <pubDate>Wed, 01 May 2024 12:00:00 GMT</pubDate>
  <source url="https://www.reuters.com">Reuters</source>
</item>
</channel></rss>"""

DIRECT_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>CNBC</title>
<item><title>Markets rally on jobs data</title><link>https://cnbc.com/a</link></item>
<item><title>Oil slips as supply rises</title><link>https://cnbc.com/b</link></item>
</channel></rss>"""


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestGNewsProvider:
    """Tests for the GNews adapter."""

    @pytest.mark.asyncio
    async def test_maps_articles(self):
        """GNews items become records with source and timestamp."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"articles": [{
                "url": "https://reuters.com/a",
                "title": "Apple beats",
                "description": "Strong quarter",
                "publishedAt": "2024-05-01T12:00:00Z",
                "source": {"name": "Reuters"},
            }]})

        async with client_for(handler) as client:
            records = await GNewsProvider(client, api_key="k").fetch("AAPL stock", 5)

        assert seen[0].url.params["q"] == "AAPL stock"
        assert records[0].source_name == "Reuters"
        assert records[0].feed_source == "gnews"
        assert records[0].published_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_no_key_makes_no_request(self):
        """Without an API key the provider yields nothing."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with client_for(handler) as client:
            assert await GNewsProvider(client, api_key="").fetch("q", 5) == []


class TestNewsAPIProvider:
    """Tests for the NewsAPI adapter and HTTP error mapping."""

    @pytest.mark.asyncio
    async def test_removed_items_dropped(self):
        """Takedown placeholders are filtered out."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "ok", "articles": [
                {"title": "[Removed]", "url": "https://removed.com"},
                {"title": "Fed holds rates", "url": "https://cnbc.com/fed", "source": {"name": "CNBC"}},
            ]})

        async with client_for(handler) as client:
            records = await NewsAPIProvider(client, api_key="k").fetch("fed", 10)

        assert [r.url for r in records] == ["https://cnbc.com/fed"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,error", [
        (429, ProviderRateLimitError),
        (403, ProviderRateLimitError),
        (503, ProviderTransientError),
    ])
    async def test_status_mapping(self, code, error):
        """429/403 mean rate limited; 5xx is transient."""
        async with client_for(lambda request: httpx.Response(code)) as client:
            with pytest.raises(error):
                await NewsAPIProvider(client, api_key="k").fetch("q", 5)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        """A timeout is a transient failure."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with client_for(handler) as client:
            with pytest.raises(ProviderTransientError):
                await NewsAPIProvider(client, api_key="k").fetch("q", 5)

    @pytest.mark.asyncio
    async def test_error_payload_yields_nothing(self):
        """An error status in the body is logged and yields no records."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "error", "message": "bad query"})

        async with client_for(handler) as client:
            assert await NewsAPIProvider(client, api_key="k").fetch("q", 5) == []


class TestRSSProviders:
    """Tests for Google News and direct RSS feeds."""

    def test_split_google_title(self):
        """The trailing publisher suffix is removed only when it matches."""
        assert split_google_title("Apple beats - Reuters", "Reuters") == "Apple beats"
        assert split_google_title("Apple beats - Reuters", "CNBC") == "Apple beats - Reuters"

    @pytest.mark.asyncio
    async def test_google_feed_entries(self):
        """Entries keep the redirect link, drop the suffix and strip HTML."""
        async with client_for(lambda request: httpx.Response(200, text=GOOGLE_FEED)) as client:
            [record] = await GoogleNewsRSSProvider(client).fetch("Apple", 5)

        assert record.title == "Apple beats estimates"
        assert record.source_name == "Reuters"
        assert record.url == "https://news.google.com/rss/articles/abc"
        assert record.description == "Apple beats estimates"
        assert record.published_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_direct_feed_ignores_query(self):
        """A direct feed is not searchable and tags its own source name."""
        async with client_for(lambda request: httpx.Response(200, text=DIRECT_FEED)) as client:
            provider = DirectRSSProvider.from_spec(client, "CNBC|https://cnbc.com/rss")
            records = await provider.fetch("", 1)

        assert not provider.searchable
        assert provider.name == "cnbc"
        assert [r.url for r in records] == ["https://cnbc.com/a"]
        assert records[0].source_name == "CNBC"


class TestContentFetcher:
    """Tests for article page downloads."""

    @pytest.mark.asyncio
    async def test_extracts_text(self):
        """Page HTML is reduced to article text."""
        html = "<html><body><article><p>Apple beat estimates.</p></article></body></html>"
        async with client_for(lambda request: httpx.Response(200, text=html)) as client:
            content = await ContentFetcher(client).fetch("https://reuters.com/a")
        assert content.clean_text == "Apple beat estimates."

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        """A 404 raises so the stage can record the failure."""
        async with client_for(lambda request: httpx.Response(404)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await ContentFetcher(client).fetch("https://reuters.com/missing")


class TestRedirectResolver:
    """Tests for following Google News redirects."""

    @pytest.mark.asyncio
    async def test_follows_to_publisher(self):
        """A redirect to an allowlisted publisher is followed."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "news.google.com":
                return httpx.Response(302, headers={"Location": "https://reuters.com/a"})
            return httpx.Response(200)

        async with client_for(handler) as client:
            resolved = await RedirectResolver(client, strict=True).resolve(
                "https://news.google.com/rss/articles/abc"
            )
        assert resolved == "https://reuters.com/a"

    @pytest.mark.asyncio
    async def test_network_failure_keeps_original(self):
        """When resolution fails the original URL is kept."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        url = "https://news.google.com/rss/articles/abc"
        async with client_for(handler) as client:
            assert await RedirectResolver(client, strict=True).resolve(url) == url
