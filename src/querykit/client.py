"""QueryClient - the facade tying the caches and defaults together."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from types import TracebackType
from typing import Any, TypeVar, cast

from querykit.adapters.base import AsyncStorageAdapter
from querykit.mutation_cache import MutationCache
from querykit.options import DefaultQueryOptions, QueryOptions, ResolvedQueryOptions
from querykit.query import Query
from querykit.query_cache import QueryCache
from querykit.query_key import QueryKey
from querykit.query_state import QueryState
from querykit.types import QueryFn, RawQueryKey

T = TypeVar("T")

logger = logging.getLogger(__name__)


class QueryClient:
    """Owns a :class:`QueryCache`, a :class:`MutationCache` and the defaults.

    Example:
        async with QueryClient(
            query_storage=AsyncMemoryAdapter(),
            default_query_options=DefaultQueryOptions(stale_duration="10s"),
        ) as client:
            todos = await client.fetch_query(["todos"], fetch_todos)
    """

    def __init__(
        self,
        *,
        query_storage: AsyncStorageAdapter | None = None,
        default_query_options: DefaultQueryOptions | None = None,
        query_cache: QueryCache | None = None,
        mutation_cache: MutationCache | None = None,
    ) -> None:
        if query_cache is not None and query_storage is not None:
            raise ValueError("Pass query_storage or query_cache, not both")
        self.query_cache = query_cache or QueryCache(storage=query_storage)
        self.mutation_cache = mutation_cache or MutationCache()
        self.default_query_options = default_query_options or DefaultQueryOptions()
        self.default_options: ResolvedQueryOptions[Any] = QueryOptions().resolve(
            self.default_query_options
        )

    async def __aenter__(self) -> QueryClient:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    async def initialize(self) -> None:
        """Initialize storage. Must complete before storage-backed queries run."""
        await self.query_cache.initialize()

    async def dispose(self) -> None:
        await self.query_cache.dispose()
        self.mutation_cache.dispose_notifier()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_query_state(
        self, key: RawQueryKey | QueryKey
    ) -> QueryState[Any, Any] | None:
        query = self.query_cache.find(key)
        return query.state if query is not None else None

    def get_query_data(self, key: RawQueryKey | QueryKey) -> Any | None:
        state = self.get_query_state(key)
        return state.data if state is not None else None

    def set_query_data(
        self,
        key: RawQueryKey | QueryKey,
        updater: T | Callable[[T | None], T],
    ) -> T:
        """Write data directly, as if fetched. ``updater`` may be a function
        receiving the current data."""
        query: Query[T, Any] = self.query_cache.build(key, self)
        data = (
            cast(Callable[[T | None], T], updater)(query.state.data)
            if callable(updater)
            else updater
        )
        query.set_data(data)
        if not query.observer_count:
            query.schedule_gc()
        return data

    async def fetch_query(
        self,
        key: RawQueryKey | QueryKey,
        fetcher: QueryFn[T],
        options: QueryOptions[T] | None = None,
    ) -> T:
        """Return fresh cached data or fetch it, raising the fetch error on failure."""
        resolved = (options or QueryOptions()).resolve(self.default_query_options)
        query: Query[T, Any] = self.query_cache.build(key, self, resolved)
        if query.hydration is not None:
            await asyncio.shield(query.hydration)
        try:
            state = query.state
            if (
                state.data is not None
                and not state.is_invalidated
                and not state.is_stale(resolved.stale_duration)
            ):
                return state.data
            query.configure(resolved, fetcher)
            await query.fetch(fetcher, retry=resolved.retry)
        finally:
            if not query.observer_count:
                query.schedule_gc()
        state = query.state
        if state.error is not None and (state.is_error or state.is_refetch_error):
            raise state.error
        assert state.data is not None
        return state.data

    async def invalidate_queries(
        self,
        key: RawQueryKey | QueryKey | None = None,
        *,
        exact: bool = False,
        refetch: bool = True,
    ) -> None:
        """Mark matching queries stale and refetch the active ones."""
        queries = self.query_cache.find_all(key, exact=exact)
        for query in queries:
            query.invalidate()
        if refetch:
            await self._refetch(q for q in queries if q.is_active)

    async def refetch_queries(
        self, key: RawQueryKey | QueryKey | None = None, *, exact: bool = False
    ) -> None:
        """Refetch matching queries that have an enabled observer."""
        await self._refetch(
            q for q in self.query_cache.find_all(key, exact=exact) if q.is_active
        )

    async def remove_queries(
        self, key: RawQueryKey | QueryKey | None = None, *, exact: bool = False
    ) -> None:
        for query in self.query_cache.find_all(key, exact=exact):
            await self.query_cache.remove(query)

    async def clear(self) -> None:
        await self.query_cache.clear()
        self.mutation_cache.clear()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def is_pending(self, key: RawQueryKey | QueryKey | None = None) -> int:
        """Number of mutations in flight, optionally only those under ``key``."""
        return self.mutation_cache.is_pending(key)

    async def _refetch(self, queries: Iterable[Query[Any, Any]]) -> None:
        targets = [q for q in queries if q.fetcher is not None]
        if not targets:
            return
        logger.debug("Refetching %d queries", len(targets))
        await asyncio.gather(*(q.fetch() for q in targets))
