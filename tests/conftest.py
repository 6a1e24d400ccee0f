"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest

from querykit import (
    AsyncMemoryAdapter,
    CustomStorageAdapter,
    DefaultQueryOptions,
    QueryClient,
)


@pytest.fixture
def storage() -> AsyncMemoryAdapter:
    """Create a fresh AsyncMemoryAdapter for each test."""
    return AsyncMemoryAdapter()


@pytest.fixture
def client() -> QueryClient:
    """A client without storage that fails fast instead of retrying."""
    return QueryClient(
        default_query_options=DefaultQueryOptions(retry_count=0, retry_delay=0)
    )


@pytest.fixture
async def storage_client(storage: AsyncMemoryAdapter) -> AsyncIterator[QueryClient]:
    """A client persisting to the memory adapter, already initialized."""
    client = QueryClient(
        query_storage=storage,
        default_query_options=DefaultQueryOptions(retry_count=0, retry_delay=0),
    )
    await client.initialize()
    yield client
    await client.dispose()


@pytest.fixture
def settle() -> Callable[[], Awaitable[None]]:
    """Let pending callbacks and coalesced notifications run."""

    async def run() -> None:
        for _ in range(5):
            await asyncio.sleep(0)

    return run


class DictAdapter(CustomStorageAdapter):
    """Minimal custom adapter over a dict, usable only once initialized."""

    async def on_initialize(self) -> None:
        self.data: dict[str, Any] = {}

    async def _get(self, key: str) -> Any | None:
        return self.data.get(key)

    async def _set(self, key: str, value: Any) -> None:
        self.data[key] = value

    async def _remove(self, key: str) -> bool:
        return self.data.pop(key, None) is not None

    async def _clear(self) -> None:
        self.data.clear()

    async def _keys(self) -> list[str]:
        return list(self.data)


@pytest.fixture
def dict_storage() -> DictAdapter:
    """A fresh, not yet initialized DictAdapter."""
    return DictAdapter()
