import logging

from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger("access_core.redis")


def get_async_redis_client(redis_url: str) -> AsyncRedis:
    """Create an async Redis client for the given URL."""
    if not redis_url:
        raise ValueError("REDIS_URL must be set")
    logger.debug("redis_client_created url=%s", redis_url.split("@")[-1])
    return AsyncRedis.from_url(redis_url, decode_responses=True)
