"""
Redis client singleton for shared session storage.

Used by the Redis session store backend so several service instances can
resolve the same call to the same flow graph.
"""

import logging
from functools import lru_cache

import redis
from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client() -> Redis:
    """
    Get cached synchronous Redis client.

    The flow core is synchronous, so the store talks to Redis with the
    blocking client. Responses are decoded to str (graphs are JSON).

    Redis Key Patterns:
        - Graph bindings: flow:session:{session_id}
        - Alias partners: flow:alias:{session_id} (list)

    Returns:
        Redis client configured with retry and health checks
    """
    settings = get_settings()

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        logger.info(
            f"Redis client initialized: {settings.REDIS_URL} "
            f"(retry_on_timeout=True, health_check_interval=30s)"
        )
        return client

    except RedisConnectionError as e:
        logger.error(
            f"Redis connection failed: {e}. Shared session storage unavailable.",
            exc_info=True
        )
        raise


def close_redis_client() -> None:
    """
    Close Redis connection gracefully.

    Note:
        Should be called during application shutdown.
    """
    try:
        client = get_redis_client()
        client.close()
        get_redis_client.cache_clear()
        logger.info("Redis client closed")
    except Exception as e:
        logger.warning(f"Error closing Redis client: {e}")
