"""Provider boundary: ``fetch(query, limit) -> list[ArticleRecord]``."""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx

from app.core.exceptions import ProviderRateLimitError, ProviderTransientError
from app.pipeline.models import ArticleRecord


class NewsProvider(ABC):
    """A pluggable news source.

    Implementations raise ProviderRateLimitError when the upstream says stop
    and ProviderTransientError on timeouts and 5xx; everything else they
    return is treated as untrusted and normalized by the caller.
    """

    name: str = "provider"
    # Sources whose calls are spaced out by the registry
    rate_limited: bool = True
    # False for fixed feeds that ignore the query
    searchable: bool = True

    @abstractmethod
    async def fetch(self, query: str, limit: int) -> list[ArticleRecord]:
        ...


def raise_for_provider_status(name: str, response: httpx.Response) -> None:
    """Map an upstream HTTP status onto the provider error taxonomy."""
    code = response.status_code
    if code in (403, 429):
        raise ProviderRateLimitError(
            message=f"{name} rate limited ({code})",
            details={"provider": name, "status": code},
        )
    if code >= 500:
        raise ProviderTransientError(
            message=f"{name} server error ({code})",
            details={"provider": name, "status": code},
        )
    if code >= 400:
        body = response.text[:200].lower()
        if "rate limit" in body or "too many requests" in body:
            raise ProviderRateLimitError(
                message=f"{name} rate limited",
                details={"provider": name, "status": code},
            )
        response.raise_for_status()


async def get_json(
    name: str, client: httpx.AsyncClient, url: str, params: dict
) -> dict:
    """GET a JSON endpoint with the provider error mapping applied."""
    try:
        response = await client.get(url, params=params)
    except httpx.TimeoutException as e:
        raise ProviderTransientError(
            message=f"{name} timed out", details={"provider": name}
        ) from e
    except httpx.TransportError as e:
        raise ProviderTransientError(
            message=f"{name} unreachable: {e}", details={"provider": name}
        ) from e
    raise_for_provider_status(name, response)
    return response.json()
