import logging
from typing import Optional

import redis

from nashra.core.config import Settings

logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings) -> Optional[redis.Redis]:
    """Build a pooled client, or None when no REDIS_URL is configured."""
    if not settings.REDIS_URL:
        return None
    kwargs = {"decode_responses": True}
    if settings.REDIS_PASSWORD:
        kwargs["password"] = settings.REDIS_PASSWORD
    pool = redis.ConnectionPool.from_url(settings.REDIS_URL, **kwargs)
    return redis.Redis(connection_pool=pool)


class NullCache:
    """Stand-in used when the deployment has no Redis."""

    enabled = False

    def flush(self) -> None:
        logger.debug("No cache configured, skipping flush")

    def ping(self) -> bool:
        return False

    def close(self) -> None:
        pass


class RedisCache:
    """Derived-view cache. Only wholesale invalidation is needed by the pipeline."""

    enabled = True

    def __init__(self, client: redis.Redis):
        self.client = client

    def flush(self) -> None:
        self.client.flushdb()
        logger.info("Redis cache cleared")

    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self) -> None:
        self.client.close()


def build_cache(settings: Settings):
    client = create_redis_client(settings)
    if client is None:
        return NullCache()
    return RedisCache(client)


def flush_quietly(cache) -> bool:
    """Flush the cache; failures are logged and never raised."""
    try:
        cache.flush()
        return True
    except Exception as e:
        logger.error("Failed to clear cache: %s", e)
        return False
