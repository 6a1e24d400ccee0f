"""Redis storage adapter."""

from __future__ import annotations

from typing import Any

from querykit.adapters.base import StorageSerializer
from querykit.adapters.custom import CustomStorageAdapter
from querykit.duration import parse_optional_duration
from querykit.errors import StorageError
from querykit.serializers import JsonSerializer
from querykit.types import Duration


class AsyncRedisAdapter(CustomStorageAdapter):
    """Async Redis storage adapter.

    Pass either an existing ``redis.asyncio.Redis`` client (left open on
    dispose) or a ``url`` (the adapter opens and closes its own client).
    Values go through ``serializer``, JSON by default.
    """

    def __init__(
        self,
        client: Any = None,  # redis.asyncio.Redis
        *,
        url: str | None = None,
        prefix: str = "querykit",
        serializer: StorageSerializer[Any] | None = None,
        ttl: Duration | None = None,
    ) -> None:
        super().__init__()
        if client is None and url is None:
            raise ValueError("Either client or url must be provided")
        self._client = client
        self._url = url
        self._owns_client = client is None
        self._prefix = prefix
        self._serializer = serializer or JsonSerializer()
        self._ttl = parse_optional_duration(ttl)

    async def on_initialize(self) -> None:
        if self._client is None:
            import redis.asyncio

            self._client = redis.asyncio.from_url(self._url)

    async def on_dispose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _storage_key(self, key: str) -> str:
        """Generate full Redis key for a stored query."""
        return f"{self._prefix}:query:{key}"

    def _strip(self, storage_key: bytes | str) -> str:
        if isinstance(storage_key, bytes):
            storage_key = storage_key.decode("utf-8")
        return storage_key[len(self._prefix) + len(":query:") :]

    async def _get(self, key: str) -> Any | None:
        try:
            data = await self._client.get(self._storage_key(key))
        except Exception as e:
            raise StorageError(f"Redis GET failed for {key!r}") from e
        if data is None:
            return None
        return self._serializer.deserialize(data)

    async def _set(self, key: str, value: Any) -> None:
        try:
            await self._client.set(
                self._storage_key(key),
                self._serializer.serialize(value),
                px=self._ttl,
            )
        except Exception as e:
            raise StorageError(f"Redis SET failed for {key!r}") from e

    async def _remove(self, key: str) -> bool:
        try:
            removed = await self._client.delete(self._storage_key(key))
        except Exception as e:
            raise StorageError(f"Redis DEL failed for {key!r}") from e
        return bool(removed)

    async def _clear(self) -> None:
        """Delete every key under this adapter's prefix."""
        # Use SCAN to find and delete all query keys
        cursor: int = 0
        pattern = f"{self._prefix}:query:*"
        try:
            while True:
                cursor, keys = await self._client.scan(
                    cursor, match=pattern, count=100
                )
                if keys:
                    await self._client.delete(*keys)
                if cursor == 0:
                    break
        except Exception as e:
            raise StorageError(
                f"Redis clear failed for prefix {self._prefix!r}"
            ) from e

    async def _keys(self) -> list[str]:
        pattern = f"{self._prefix}:query:*"
        try:
            return [
                self._strip(storage_key)
                async for storage_key in self._client.scan_iter(
                    match=pattern, count=100
                )
            ]
        except Exception as e:
            raise StorageError(
                f"Redis SCAN failed for prefix {self._prefix!r}"
            ) from e

    async def contains_key(self, key: str) -> bool:
        self.ensure_initialized()
        try:
            return bool(await self._client.exists(self._storage_key(key)))
        except Exception as e:
            raise StorageError(f"Redis EXISTS failed for {key!r}") from e
