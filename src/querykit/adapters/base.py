"""Base adapter protocols for storage backends."""

from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class AsyncStorageAdapter(Protocol):
    """Async key/value storage used to persist query results.

    Keys are the canonical serialized form of a query key; values are the
    records the cache writes (plain dicts of JSON-friendly data).
    """

    async def initialize(self) -> None:
        """Prepare the backend. Calling it twice is a no-op."""
        ...

    async def dispose(self) -> None:
        """Release the backend. Calling it twice is a no-op."""
        ...

    async def get(self, key: str) -> Any | None:
        """Get a value by key, or None if absent."""
        ...

    async def set(self, key: str, value: Any) -> None:
        """Store a value, replacing any previous one."""
        ...

    async def remove(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""
        ...

    async def clear(self) -> None:
        """Remove every entry."""
        ...

    async def keys(self) -> list[str]:
        """All keys currently stored."""
        ...

    async def values(self) -> list[Any]:
        """All values currently stored."""
        ...

    async def entries(self) -> dict[str, Any]:
        """All key/value pairs currently stored."""
        ...

    async def contains_key(self, key: str) -> bool:
        """Check if a key is stored."""
        ...

    async def length(self) -> int:
        """Number of stored entries."""
        ...


@runtime_checkable
class StorageSerializer(Protocol[T]):
    """Converts values to and from an adapter's storage representation."""

    def serialize(self, value: T) -> Any:
        """Convert ``value`` to its raw stored form."""
        ...

    def deserialize(self, raw: Any) -> T:
        """Rebuild a value from its raw stored form."""
        ...
