"""News providers, URL handling and article download."""

from .base import NewsProvider
from .fetcher import ContentFetcher, FetchedContent, extract_content, is_boilerplate
from .gnews import GNewsProvider
from .newsapi import NewsAPIProvider
from .registry import SourceRegistry, build_registry, next_backoff
from .rss import DirectRSSProvider, GoogleNewsRSSProvider
from .urls import RedirectResolver, normalize_url


__all__ = [
    "ContentFetcher",
    "DirectRSSProvider",
    "FetchedContent",
    "GNewsProvider",
    "GoogleNewsRSSProvider",
    "NewsAPIProvider",
    "NewsProvider",
    "RedirectResolver",
    "SourceRegistry",
    "build_registry",
    "extract_content",
    "is_boilerplate",
    "next_backoff",
    "normalize_url",
]
