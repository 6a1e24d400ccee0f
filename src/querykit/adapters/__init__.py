"""Storage adapters for querykit (async only)."""

from contextlib import suppress

from querykit.adapters.base import (
    AsyncStorageAdapter,
    StorageSerializer,
)
from querykit.adapters.custom import CustomStorageAdapter
from querykit.adapters.memory import AsyncMemoryAdapter

# Optional adapters - only available when dependencies are installed
with suppress(ImportError):
    from querykit.adapters.redis import AsyncRedisAdapter

__all__ = [
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
    "CustomStorageAdapter",
    "StorageSerializer",
]
