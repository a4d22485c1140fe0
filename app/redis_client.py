"""
Shared key-value store connection.

Rate-limit counters, preferences and the job queue all live in one Redis
instance so several service processes can share them.
"""
from typing import Optional

from redis.asyncio import Redis

from app.config import REDIS_URL, REDIS_SOCKET_TIMEOUT, REDIS_CONNECT_TIMEOUT


_redis: Optional[Redis] = None


def get_redis() -> Redis:
    """
    Get the Redis client singleton.

    Usage with FastAPI dependency injection:
        @app.get('/usage')
        async def usage(redis: Redis = Depends(get_redis)):
            ...
    """
    global _redis
    if _redis is None:
        _redis = Redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=REDIS_CONNECT_TIMEOUT,
        )
    return _redis


async def close_redis():
    """Close the Redis connection pool."""
    global _redis
    if _redis is not None:
        client = _redis
        _redis = None
        await client.aclose()


def reset_redis():
    """Drop the Redis singleton without closing it (for testing)."""
    global _redis
    _redis = None
