"""
Redis connection setup using redis-py async client.

The shared instance backs the exchange-rate cache. Celery talks to
its own broker URL and does not use this client.
"""

import redis.asyncio as aioredis

from app.config import settings

redis = aioredis.from_url(
    settings.REDIS_URL,
    decode_responses=True,
    ssl=settings.REDIS_SSL,
)


async def get_redis() -> aioredis.Redis:
    """FastAPI dependency that provides the rate-cache Redis client."""
    return redis


async def close_redis() -> None:
    await redis.aclose()
