"""In-memory storage adapter (async only)."""

import asyncio
from collections import OrderedDict
from typing import Any

from querykit.adapters.base import StorageSerializer


class AsyncMemoryAdapter:
    """Async in-memory storage adapter with optional LRU eviction."""

    def __init__(
        self,
        max_items: int | None = None,
        *,
        serializer: StorageSerializer[Any] | None = None,
    ) -> None:
        self._store: OrderedDict[str, Any] = OrderedDict()
        self._max_items = max_items
        self._serializer = serializer
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Nothing to prepare for memory."""

    async def dispose(self) -> None:
        """Nothing to release for memory."""

    async def get(self, key: str) -> Any | None:
        """Get a value by key."""
        async with self._lock:
            raw = self._store.get(key)
            if raw is None:
                return None
            self._store.move_to_end(key)  # LRU touch
        return self._decode(raw)

    async def set(self, key: str, value: Any) -> None:
        """Store a value."""
        raw = self._encode(value)
        async with self._lock:
            self._store[key] = raw
            self._store.move_to_end(key)
            if self._max_items and len(self._store) > self._max_items:
                self._store.popitem(last=False)

    async def remove(self, key: str) -> bool:
        """Remove a value. Returns True if it existed."""
        async with self._lock:
            return self._store.pop(key, None) is not None

    async def clear(self) -> None:
        """Clear all entries."""
        async with self._lock:
            self._store.clear()

    async def keys(self) -> list[str]:
        async with self._lock:
            return list(self._store)

    async def values(self) -> list[Any]:
        async with self._lock:
            raws = list(self._store.values())
        return [self._decode(raw) for raw in raws]

    async def entries(self) -> dict[str, Any]:
        async with self._lock:
            items = list(self._store.items())
        return {key: self._decode(raw) for key, raw in items}

    async def contains_key(self, key: str) -> bool:
        async with self._lock:
            return key in self._store

    async def length(self) -> int:
        async with self._lock:
            return len(self._store)

    def _encode(self, value: Any) -> Any:
        return self._serializer.serialize(value) if self._serializer else value

    def _decode(self, raw: Any) -> Any:
        return self._serializer.deserialize(raw) if self._serializer else raw
