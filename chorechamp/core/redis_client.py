"""Async Redis client singleton with graceful fallback.

Redis only backs read caches (leaderboards). If it is not configured or
unreachable, cache reads miss and cache writes are skipped; the ledger in
the database stays the only source of truth.
"""

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from chorechamp.config import settings

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis | None:
    """Return the shared Redis client, or None if Redis is unavailable."""
    global _redis
    if not settings.REDIS_URL:
        return None
    if _redis is None:
        try:
            client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
            await client.ping()
            _redis = client
            logger.info("Redis connected at %s", settings.REDIS_URL)
        except (RedisError, OSError):
            logger.warning("Redis unavailable – caching disabled (%s)", settings.REDIS_URL)
            _redis = None
    return _redis


async def cache_get_json(key: str):
    """Return the decoded cached value for ``key`` or None on miss."""
    redis = await get_redis()
    if redis is None:
        return None
    try:
        cached = await redis.get(key)
    except RedisError:
        logger.warning("Redis read failed for %s", key)
        return None
    return json.loads(cached) if cached else None


async def cache_set_json(key: str, value, ttl: int) -> None:
    redis = await get_redis()
    if redis is None:
        return
    try:
        await redis.setex(key, ttl, json.dumps(value, default=str))
    except RedisError:
        logger.warning("Redis write failed for %s", key)


async def cache_delete(*keys: str) -> None:
    redis = await get_redis()
    if redis is None or not keys:
        return
    try:
        await redis.delete(*keys)
    except RedisError:
        logger.warning("Redis delete failed for %s", ", ".join(keys))


async def close_redis() -> None:
    """Close the Redis connection on application shutdown."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
        logger.info("Redis connection closed")
