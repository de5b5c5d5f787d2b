"""
Redis client initialization and connection management.

This module provides the Redis client used by the change feed.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError
from tracking_backend.app.core.config import settings


def create_redis_client(url: str = None) -> redis.Redis:
    """Create an async Redis client. The caller owns it and must close it."""
    return redis.from_url(
        url or settings.redis_url,
        decode_responses=settings.redis_decode_responses,
    )


async def ping_redis(client: redis.Redis) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await client.ping()
    except (RedisError, OSError):
        return False
