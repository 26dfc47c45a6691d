"""Shared rate limiter instance.

Point-granting and redemption endpoints are limited per client address.
Counters live in Redis when it is configured and reachable, so limits hold
across workers; otherwise they are kept in memory (development / tests).
"""

import logging

import redis as sync_redis
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

# Per-endpoint limits for the write paths of the ledger.
BONUS_RATE_LIMIT = "30/minute"
REDEEM_RATE_LIMIT = "20/minute"
RECONCILE_RATE_LIMIT = "10/minute"


def _create_limiter() -> Limiter:
    from chorechamp.config import settings

    default_limits = [settings.RATE_LIMIT_DEFAULT]
    if not settings.REDIS_URL:
        logger.info("Rate limiter: no REDIS_URL configured, using in-memory storage")
        return Limiter(key_func=get_remote_address, default_limits=default_limits)

    try:
        client = sync_redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        client.ping()
        client.close()
        logger.info("Rate limiter: Redis storage (%s)", settings.REDIS_URL)
        return Limiter(
            key_func=get_remote_address,
            default_limits=default_limits,
            storage_uri=settings.REDIS_URL,
        )
    except (sync_redis.RedisError, OSError):
        logger.warning("Rate limiter: Redis unavailable, using in-memory storage")
        return Limiter(key_func=get_remote_address, default_limits=default_limits)


limiter = _create_limiter()
