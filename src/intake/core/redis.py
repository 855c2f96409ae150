"""
Redis Configuration

Async Redis client backing the shared expiring store (rate limits and
verification codes). Redis is optional; without it the service falls back
to process-local stores.
"""

from redis.asyncio import Redis, from_url

from intake.core.config import settings

# Redis client instance
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Initialize Redis connection.

    Call this on application startup.
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Test connection before publishing the client
    await client.ping()
    redis_client = client
    return redis_client


def get_redis() -> Redis | None:
    """Return the Redis client, or None if it was never connected."""
    return redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
