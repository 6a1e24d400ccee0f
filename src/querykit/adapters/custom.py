"""Base class for storage adapters that need explicit initialization."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from querykit.errors import ConfigurationError


class CustomStorageAdapter(ABC):
    """Guards every operation behind :meth:`initialize`.

    Subclasses implement the underscore hooks; the public methods check
    that the adapter was initialized and raise :class:`ConfigurationError`
    otherwise. ``initialize``/``dispose`` run ``on_initialize``/``on_dispose``
    at most once per lifecycle.

    Example:
        class DictAdapter(CustomStorageAdapter):
            async def on_initialize(self) -> None:
                self._data = {}

            async def _get(self, key):
                return self._data.get(key)
            ...
    """

    def __init__(self) -> None:
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.on_initialize()
        self._initialized = True

    async def dispose(self) -> None:
        if not self._initialized:
            return
        await self.on_dispose()
        self._initialized = False

    async def on_initialize(self) -> None:
        """Hook: open connections, files, ..."""

    async def on_dispose(self) -> None:
        """Hook: close whatever ``on_initialize`` opened."""

    def ensure_initialized(self) -> None:
        if not self._initialized:
            raise ConfigurationError(
                f"{type(self).__name__} not initialized. "
                "Call initialize() before using the storage."
            )

    async def get(self, key: str) -> Any | None:
        self.ensure_initialized()
        return await self._get(key)

    async def set(self, key: str, value: Any) -> None:
        self.ensure_initialized()
        await self._set(key, value)

    async def remove(self, key: str) -> bool:
        self.ensure_initialized()
        return await self._remove(key)

    async def clear(self) -> None:
        self.ensure_initialized()
        await self._clear()

    async def keys(self) -> list[str]:
        self.ensure_initialized()
        return await self._keys()

    async def values(self) -> list[Any]:
        self.ensure_initialized()
        return list((await self.entries()).values())

    async def entries(self) -> dict[str, Any]:
        self.ensure_initialized()
        result: dict[str, Any] = {}
        for key in await self._keys():
            value = await self._get(key)
            if value is not None:
                result[key] = value
        return result

    async def contains_key(self, key: str) -> bool:
        self.ensure_initialized()
        return await self._get(key) is not None

    async def length(self) -> int:
        self.ensure_initialized()
        return len(await self._keys())

    @abstractmethod
    async def _get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def _set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    async def _remove(self, key: str) -> bool: ...

    @abstractmethod
    async def _clear(self) -> None: ...

    @abstractmethod
    async def _keys(self) -> list[str]: ...
