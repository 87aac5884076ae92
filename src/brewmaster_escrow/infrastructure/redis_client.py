"""Redis client for distributed per-transaction locks.

Usage:
    from brewmaster_escrow.infrastructure.redis_client import init_redis, close_redis

    redis = await init_redis()
    locks = RedisLockProvider(redis)
"""

from __future__ import annotations

import redis.asyncio as aioredis

from brewmaster_escrow.config import get_settings
from brewmaster_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis(redis_url: str | None = None) -> aioredis.Redis:
    """Initialize and return the Redis client. Called during startup."""
    global _redis_client
    url = redis_url or get_settings().redis_url
    _redis_client = aioredis.from_url(url, decode_responses=True)
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis.connected", url=url)
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None
