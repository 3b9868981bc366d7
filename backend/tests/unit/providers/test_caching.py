import pytest
from unittest.mock import AsyncMock, patch
from pydantic import BaseModel

from common.providers.caching import MemoryCache, PassthroughCache, cache
from common.providers.caching.factory import get_cache_provider, set_cache_provider


class SampleModel(BaseModel):
    id: int
    name: str


def sample_key(id: int) -> str:
    return f"sample:{id}"


class SampleRepository:
    def __init__(self):
        self.call_count = 0
        self.bool_call_count = 0

    @cache(SampleModel, ttl=60)
    async def get_model(self, id: int) -> SampleModel:
        self.call_count += 1
        return SampleModel(id=id, name=f"test_{id}")

    @cache(bool, ttl=60)
    async def exists(self, id: int) -> bool:
        self.bool_call_count += 1
        return id > 0

    @cache(SampleModel, ttl=60, key_generator=sample_key)
    async def get_keyed(self, id: int) -> SampleModel:
        self.call_count += 1
        return SampleModel(id=id, name=f"keyed_{id}")


class TestCaching:
    @pytest.mark.asyncio
    async def test_basic_cache_functionality(self):
        """Test that cache stores and retrieves Pydantic models correctly."""
        repo = SampleRepository()

        # First call - should execute function (cache miss)
        result1 = await repo.get_model(1)
        assert result1.id == 1
        assert result1.name == "test_1"
        assert repo.call_count == 1

        # Second call - should use cache (cache hit)
        result2 = await repo.get_model(1)
        assert result2 == result1
        assert repo.call_count == 1  # Function not called again

        # Different args - should execute function again
        result3 = await repo.get_model(2)
        assert result3.id == 2
        assert result3.name == "test_2"
        assert repo.call_count == 2

    @pytest.mark.asyncio
    async def test_regular_type_caching(self):
        """Test that cache handles regular types like bool correctly."""
        repo = SampleRepository()

        result1 = await repo.exists(1)
        assert result1 is True
        assert repo.bool_call_count == 1

        result2 = await repo.exists(1)
        assert result2 is True
        assert repo.bool_call_count == 1

    @pytest.mark.asyncio
    async def test_key_generator_excludes_self(self):
        repo = SampleRepository()

        await repo.get_keyed(7)
        cached = await get_cache_provider().get("sample:7")

        assert cached == {"id": 7, "name": "keyed_7"}

        await get_cache_provider().delete("sample:7")
        await repo.get_keyed(7)
        assert repo.call_count == 2

    @pytest.mark.asyncio
    async def test_cache_failure_falls_through_to_function(self):
        """A broken cache never fails the call."""
        broken = AsyncMock()
        broken.get = AsyncMock(side_effect=ConnectionError("redis down"))
        broken.set = AsyncMock(side_effect=ConnectionError("redis down"))
        repo = SampleRepository()

        with patch(
            "common.providers.caching.decorators.get_cache_provider",
            return_value=broken,
        ):
            result = await repo.get_model(3)

        assert result.id == 3
        assert repo.call_count == 1

    @pytest.mark.asyncio
    async def test_passthrough_cache_always_misses(self):
        set_cache_provider(PassthroughCache())
        repo = SampleRepository()

        await repo.get_model(1)
        await repo.get_model(1)

        assert repo.call_count == 2


class TestMemoryCache:
    @pytest.mark.asyncio
    async def test_expired_entries_are_misses(self):
        cache_provider = MemoryCache()
        await cache_provider.set("short", "value", ttl=60)

        with patch("common.providers.caching.memory_cache.time.time") as clock:
            clock.return_value = 10**12
            assert await cache_provider.get("short") is None

    @pytest.mark.asyncio
    async def test_delete_pattern(self):
        cache_provider = MemoryCache()
        await cache_provider.set("provider_subscription:sub_1", {"id": "sub_1"})
        await cache_provider.set("provider_subscription:sub_2", {"id": "sub_2"})
        await cache_provider.set("plans:stripe_prices", {})

        removed = await cache_provider.delete_pattern("provider_subscription:*")

        assert removed == 2
        assert await cache_provider.get("plans:stripe_prices") == {}
