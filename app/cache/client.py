"""Valkey client for the shared explanation cache backend."""

from __future__ import annotations

import asyncio

from redis.asyncio import ConnectionPool, Redis

from app.core.config import settings
from app.core.logging import get_logger


logger = get_logger("cache.client")

# redis.asyncio pools are bound to the loop that created them
_clients: dict[int, Redis] = {}


def _loop_key() -> int:
    try:
        return id(asyncio.get_running_loop())
    except RuntimeError:
        return 0


async def get_valkey_client() -> Redis:
    """Client for the running event loop, created on first use."""
    key = _loop_key()
    client = _clients.get(key)
    if client is None:
        pool = ConnectionPool.from_url(
            settings.valkey_url,
            max_connections=settings.valkey_max_connections,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
            health_check_interval=30,
        )
        client = Redis(connection_pool=pool)
        _clients[key] = client
        logger.info("Valkey client created", extra={"extra_fields": {"loop": key}})
    return client


async def close_valkey_client() -> None:
    client = _clients.pop(_loop_key(), None)
    if client is not None:
        await client.aclose()
        logger.info("Valkey client closed")


async def valkey_healthcheck() -> bool:
    try:
        client = await get_valkey_client()
        result = await asyncio.wait_for(client.ping(), timeout=5.0)
        return result is True or result == "PONG"
    except Exception as e:
        logger.warning(f"Valkey healthcheck failed: {e}")
        return False
