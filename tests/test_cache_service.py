"""Tests for the Redis price cache service."""

import pytest

from price_agent.services.cache_service import PriceCacheService, price_cache_key


class FakeRedis:
    """Minimal async Redis double supporting SCAN and DEL."""

    def __init__(self, keys: list[str]):
        self.keys = set(keys)
        self.deleted: list[tuple[str, ...]] = []
        self.closed = False

    async def scan_iter(self, match: str, count: int):
        prefix, _, suffix = match.partition("*")
        for key in sorted(self.keys):
            if key.startswith(prefix) and key.endswith(suffix):
                yield key

    async def delete(self, *keys: str) -> int:
        self.deleted.append(keys)
        removed = len(self.keys & set(keys))
        self.keys -= set(keys)
        return removed

    async def aclose(self) -> None:
        self.closed = True


class TestPriceCacheKey:
    """Tests for the cache key scheme."""

    def test_ids_sorted_and_deduplicated(self) -> None:
        """Test that lookup order does not change the key."""
        assert price_cache_key([3, 1, 2, 3], 7) == "prices:1,2,3:7"
        assert price_cache_key([2, 1], 7) == price_cache_key([1, 2], 7)

    def test_custom_prefix(self) -> None:
        """Test the key namespace."""
        assert price_cache_key([5], 2, prefix="p") == "p:5:2"


class TestPriceCacheService:
    """Tests for PriceCacheService."""

    def test_store_pattern(self) -> None:
        """Test the invalidation glob."""
        service = PriceCacheService(client=FakeRedis([]))
        assert service.store_pattern(4) == "prices:*:4"

    @pytest.mark.asyncio
    async def test_invalidate_store(self) -> None:
        """Test that only the given store's keys are deleted."""
        client = FakeRedis(["prices:1,2:3", "prices:5:3", "prices:1,2:13", "prices:1:4"])
        service = PriceCacheService(client=client)

        deleted = await service.invalidate_store(3)

        assert deleted == 2
        assert client.keys == {"prices:1,2:13", "prices:1:4"}

    @pytest.mark.asyncio
    async def test_invalidate_store_without_keys(self) -> None:
        """Test that nothing is deleted when no lookup was cached."""
        client = FakeRedis(["prices:1:4"])
        service = PriceCacheService(client=client)

        assert await service.invalidate_store(3) == 0
        assert client.deleted == []

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        """Test that close releases the client."""
        client = FakeRedis([])
        await PriceCacheService(client=client).close()
        assert client.closed
