"""Redis cache service for price lookups.

Price queries are cached under ``prices:<sorted product ids>:<store id>``.
After a store's prices change, every key ending in that store id is dropped
so readers never see a snapshot older than the database.
"""

import logging
import os
from collections.abc import Iterable

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "prices"
SCAN_BATCH = 500


def price_cache_key(product_ids: Iterable[int], store_id: int | str, prefix: str = DEFAULT_PREFIX) -> str:
    """Build the cache key for a set of products in one store."""
    ids = ",".join(str(i) for i in sorted(set(product_ids)))
    return f"{prefix}:{ids}:{store_id}"


def create_redis_client() -> Redis:
    """Create an asyncio Redis client from REDIS_HOST/REDIS_PORT/REDIS_DB."""
    return Redis(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        db=int(os.environ.get("REDIS_DB", "0")),
        socket_timeout=5,
        socket_connect_timeout=5,
    )


class PriceCacheService:
    """Invalidates cached price lookups in Redis."""

    def __init__(self, client: Redis | None = None, prefix: str = DEFAULT_PREFIX):
        """
        Initialize the cache service.

        Args:
            client: Redis client (default: built from REDIS_* env vars)
            prefix: Key namespace for price lookups
        """
        self.client = client if client is not None else create_redis_client()
        self.prefix = prefix

    def store_pattern(self, store_id: int | str) -> str:
        """Glob matching every cached lookup for one store."""
        return f"{self.prefix}:*:{store_id}"

    async def invalidate_store(self, store_id: int | str) -> int:
        """
        Delete every cached lookup for a store.

        Uses SCAN rather than KEYS so a large keyspace does not block Redis.
        Errors propagate to the caller.

        Args:
            store_id: Store whose prices changed

        Returns:
            Number of keys deleted
        """
        pattern = self.store_pattern(store_id)
        keys = [key async for key in self.client.scan_iter(match=pattern, count=SCAN_BATCH)]
        deleted = 0
        for start in range(0, len(keys), SCAN_BATCH):
            deleted += await self.client.delete(*keys[start : start + SCAN_BATCH])
        logger.info(f"Invalidated {deleted} cache keys matching '{pattern}'")
        return deleted

    async def close(self) -> None:
        await self.client.aclose()
