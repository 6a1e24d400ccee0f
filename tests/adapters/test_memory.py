"""Tests for memory adapter."""

import pytest

from querykit import AsyncMemoryAdapter, AsyncStorageAdapter, ModelSerializer


@pytest.fixture
def adapter() -> AsyncMemoryAdapter:
    return AsyncMemoryAdapter()


class TestAsyncMemoryAdapter:
    """Tests for the storage contract."""

    async def test_get_nonexistent_returns_none(
        self, adapter: AsyncMemoryAdapter
    ) -> None:
        """Test that getting a nonexistent key returns None."""
        assert await adapter.get("nonexistent") is None

    async def test_set_and_get(self, adapter: AsyncMemoryAdapter) -> None:
        """Test setting and getting a value."""
        await adapter.set("key1", {"id": "123"})
        assert await adapter.get("key1") == {"id": "123"}

    async def test_set_overwrites(self, adapter: AsyncMemoryAdapter) -> None:
        await adapter.set("key1", 1)
        await adapter.set("key1", 2)
        assert await adapter.get("key1") == 2
        assert await adapter.length() == 1

    async def test_remove(self, adapter: AsyncMemoryAdapter) -> None:
        """Test removing a value reports whether it existed."""
        await adapter.set("key1", "v")
        assert await adapter.remove("key1") is True
        assert await adapter.remove("key1") is False
        assert await adapter.get("key1") is None

    async def test_clear(self, adapter: AsyncMemoryAdapter) -> None:
        """Test clearing all entries."""
        await adapter.set("key1", 1)
        await adapter.set("key2", 2)
        await adapter.clear()
        assert await adapter.length() == 0

    async def test_listing(self, adapter: AsyncMemoryAdapter) -> None:
        await adapter.set("a", 1)
        await adapter.set("b", 2)

        assert await adapter.keys() == ["a", "b"]
        assert await adapter.values() == [1, 2]
        assert await adapter.entries() == {"a": 1, "b": 2}
        assert await adapter.contains_key("a")
        assert not await adapter.contains_key("c")

    async def test_lifecycle_is_a_no_op(self, adapter: AsyncMemoryAdapter) -> None:
        await adapter.initialize()
        await adapter.set("a", 1)
        await adapter.dispose()
        assert await adapter.get("a") == 1

    def test_satisfies_protocol(self, adapter: AsyncMemoryAdapter) -> None:
        assert isinstance(adapter, AsyncStorageAdapter)


class TestLruEviction:
    """Tests for max_items."""

    async def test_evicts_least_recently_used(self) -> None:
        """Test that the oldest untouched entry goes first."""
        adapter = AsyncMemoryAdapter(max_items=2)
        await adapter.set("a", 1)
        await adapter.set("b", 2)
        await adapter.get("a")  # touch
        await adapter.set("c", 3)

        assert await adapter.keys() == ["a", "c"]
        assert await adapter.get("b") is None

    async def test_unbounded_by_default(self, adapter: AsyncMemoryAdapter) -> None:
        for i in range(500):
            await adapter.set(str(i), i)
        assert await adapter.length() == 500


class TestSerializer:
    """Values pass through the serializer on the way in and out."""

    async def test_round_trip(self) -> None:
        serializer = ModelSerializer(to_json=sorted, from_json=set)
        adapter = AsyncMemoryAdapter(serializer=serializer)
        await adapter.set("ids", {3, 1, 2})

        assert adapter._store["ids"] == "[1,2,3]"
        assert await adapter.get("ids") == {1, 2, 3}
        assert await adapter.entries() == {"ids": {1, 2, 3}}
