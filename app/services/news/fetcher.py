"""Full-text download and extraction for the fetch stage."""

from __future__ import annotations

import re
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger("news.fetcher")

NOISE_TAGS = ("script", "style", "noscript", "nav", "header", "footer", "aside", "form", "iframe")

BOILERPLATE_PATTERNS = [
    re.compile(r"subscribe\s+to\s+our\s+newsletter", re.IGNORECASE),
    re.compile(r"sign\s+up\s+for\s+updates", re.IGNORECASE),
    re.compile(r"click\s+here\s+to\s+", re.IGNORECASE),
    re.compile(r"read\s+more", re.IGNORECASE),
    re.compile(r"cookie\s+policy", re.IGNORECASE),
    re.compile(r"privacy\s+policy", re.IGNORECASE),
    re.compile(r"terms\s+of\s+service", re.IGNORECASE),
]


@dataclass
class FetchedContent:
    clean_text: str
    canonical_url: str | None = None

    @property
    def length(self) -> int:
        return len(self.clean_text)


def is_boilerplate(text: str) -> bool:
    """More than three boilerplate phrases per 500 characters."""
    if not text or len(text) < 100:
        return False
    hits = sum(len(pattern.findall(text)) for pattern in BOILERPLATE_PATTERNS)
    return hits / (len(text) / 500) > 3


def extract_content(html: str) -> FetchedContent:
    """Readable text plus the page's declared canonical URL."""
    soup = BeautifulSoup(html, "html.parser")

    canonical = None
    link = soup.find("link", rel="canonical")
    if link and link.get("href"):
        canonical = link["href"].strip() or None

    for tag in soup(NOISE_TAGS):
        tag.decompose()

    container = soup.find("article") or soup.find("main") or soup.body or soup
    paragraphs = [p.get_text(" ", strip=True) for p in container.find_all("p")]
    text = "\n".join(p for p in paragraphs if p)
    if not text:
        text = container.get_text(" ", strip=True)
    text = re.sub(r"[ \t]+", " ", text).strip()
    return FetchedContent(clean_text=text, canonical_url=canonical)


class ContentFetcher:
    """Downloads article pages over a shared httpx client."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def fetch(self, url: str) -> FetchedContent:
        """Raises httpx.HTTPError on network or status failures."""
        headers = {"User-Agent": "Mozilla/5.0 (compatible; signalfeed/1.0)"}
        if self._client is not None:
            response = await self._client.get(url, headers=headers, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=settings.external_api_timeout) as client:
                response = await client.get(url, headers=headers, follow_redirects=True)
        response.raise_for_status()
        content = extract_content(response.text)
        logger.debug(f"Fetched {content.length} chars from {url}")
        return content
