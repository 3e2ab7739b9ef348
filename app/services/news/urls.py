"""URL canonicalization and publisher redirect resolution.

Google News hands out redirect URLs; we follow them to the publisher so the
stored key is the article's real address. Resolution never fails loudly:
anything unexpected falls back to the URL we were given.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger("news.urls")


TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "gclid",
        "fbclid",
        "ref",
        "source",
        "campaign",
        "medium",
    }
)

ALLOWED_REDIRECT_DOMAINS = (
    "reuters.com",
    "bloomberg.com",
    "wsj.com",
    "ft.com",
    "nytimes.com",
    "washingtonpost.com",
    "theguardian.com",
    "cnbc.com",
    "marketwatch.com",
    "barrons.com",
    "morningstar.com",
    "yahoo.com",
    "cnn.com",
    "bbc.com",
    "bbc.co.uk",
    "cbsnews.com",
    "nbcnews.com",
    "foxbusiness.com",
    "businessinsider.com",
    "forbes.com",
    "fortune.com",
    "economist.com",
    "axios.com",
    "investopedia.com",
    "seekingalpha.com",
    "fool.com",
    "investors.com",
    "thestreet.com",
    "coindesk.com",
    "apnews.com",
    "ap.org",
)

BLOCKED_DOMAINS = (
    "google.com",
    "googletagmanager.com",
    "doubleclick.net",
    "google-analytics.com",
    "facebook.com",
    "twitter.com",
    "linkedin.com",
)

# Google News itself is the redirect source, not a tracker
UNBLOCKED_HOSTS = frozenset({"news.google.com"})

REDIRECT_HOSTS = frozenset({"news.google.com"})


def _hostname(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def _matches(host: str, domains: tuple[str, ...]) -> bool:
    return any(host == domain or host.endswith("." + domain) for domain in domains)


def is_allowed_domain(url: str) -> bool:
    return _matches(_hostname(url), ALLOWED_REDIRECT_DOMAINS)


def is_blocked_domain(url: str) -> bool:
    host = _hostname(url)
    if host in UNBLOCKED_HOSTS:
        return False
    return _matches(host, BLOCKED_DOMAINS)


def is_redirect_url(url: str) -> bool:
    return _hostname(url) in REDIRECT_HOSTS


def normalize_url(url: str) -> str:
    """Canonical form used as the article key.

    https (except localhost), lowercase host without ``www.``, no trailing
    slash except on the root path, tracking parameters and fragment removed.
    Unparseable input is returned unchanged.
    """
    if not url:
        return url
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return url
    if not parts.netloc:
        return url

    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    scheme = parts.scheme.lower() or "https"
    if host not in ("localhost", "127.0.0.1"):
        scheme = "https"
    netloc = host
    if parts.port and host in ("localhost", "127.0.0.1"):
        netloc = f"{host}:{parts.port}"

    path = parts.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = urlencode(
        [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if key.lower() not in TRACKING_PARAMS
        ]
    )
    return urlunsplit((scheme, netloc, path, query, ""))


class RedirectResolver:
    """Follow redirect-style URLs to the publisher and vet the result."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        strict: bool | None = None,
        timeout: float = 10.0,
    ):
        self._client = client
        self.strict = settings.strict_redirect_allowlist if strict is None else strict
        self.timeout = timeout

    async def _final_url(self, client: httpx.AsyncClient, url: str) -> str:
        try:
            response = await client.head(url, follow_redirects=True)
            if response.status_code < 400:
                return str(response.url)
        except httpx.HTTPError:
            pass
        response = await client.get(
            url, follow_redirects=True, headers={"Range": "bytes=0-0"}
        )
        return str(response.url)

    async def resolve(self, url: str) -> str:
        """Return the publisher URL for ``url``, or ``url`` itself."""
        if not is_redirect_url(url):
            return url

        try:
            if self._client is not None:
                final = await self._final_url(self._client, url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    final = await self._final_url(client, url)
        except httpx.HTTPError as e:
            logger.debug(f"Redirect resolution failed for {url}: {e}")
            return url

        return self.vet(url, final)

    def vet(self, original: str, final: str) -> str:
        """Apply the block/allow policy to a resolved URL."""
        if not final or final == original:
            return original
        host = _hostname(final)
        if host == "google.com" or host.endswith(".google.com"):
            return original
        if is_blocked_domain(final):
            logger.debug(f"Resolved URL on blocked domain, keeping original: {final}")
            return original
        if is_allowed_domain(final):
            return final
        if self.strict:
            logger.info(f"Resolved URL not on allowlist, rejected: {host}")
            return original
        logger.warning(f"Resolved URL not on allowlist, passing through: {host}")
        return final
