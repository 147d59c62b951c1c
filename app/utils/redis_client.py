"""
Sparkmatch — Shared Redis client.

One client per process, connected during application (or CLI) startup and
read lazily by the notification emitter.
"""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog

from app.config import get_settings

logger = structlog.get_logger("sparkmatch.redis")

_redis_client: aioredis.Redis | None = None


async def connect_redis() -> aioredis.Redis:
    global _redis_client

    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
    )
    # Verify connectivity
    await _redis_client.ping()
    # Credentials in the URL stay out of the logs
    target = _redis_client.connection_pool.connection_kwargs
    logger.info(
        "redis_connected",
        host=target.get("host"),
        port=target.get("port"),
        db=target.get("db"),
    )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_closed")


def get_redis() -> aioredis.Redis | None:
    """Return the shared Redis client, or ``None`` before ``connect_redis``."""
    return _redis_client
