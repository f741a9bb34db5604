"""
Redis Configuration

Async Redis client shared by the rate limiter and, when configured, the
keyed store for one-time codes and revoked tokens. Redis is optional in
development: callers check `redis_client` for None and fall back to
process memory.
"""

import logging

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from school_portal.core.config import settings

logger = logging.getLogger(__name__)

# Set by init_redis, cleared by close_redis
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to settings.redis_url and ping. Call on application startup."""
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    return redis_client


async def redis_status() -> str:
    """
    Connection state for the readiness probe.

    Returns:
        "disabled" when no client was connected at startup,
        "ok" when the server answers a ping, "down" otherwise
    """
    if redis_client is None:
        return "disabled"
    try:
        await redis_client.ping()
    except RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return "down"
    return "ok"


async def close_redis() -> None:
    """Close the Redis connection, if any."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
