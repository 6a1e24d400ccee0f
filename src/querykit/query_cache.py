"""QueryCache - registry of queries with optional persistent storage.

Provides:
- find-or-build of one :class:`Query` per canonical key
- eviction, with removal of the persisted record
- hydration of new queries from storage, guarded against racing live fetches
- persistence of every successful live result
- cache-level notifications, coalesced to one per loop iteration
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

from querykit.adapters.base import AsyncStorageAdapter
from querykit.errors import ConfigurationError, QueryNotFoundError
from querykit.notifier import Notifier
from querykit.options import ResolvedQueryOptions
from querykit.query import Query
from querykit.query_key import QueryKey, as_query_key
from querykit.query_state import now_ms
from querykit.types import DispatchAction, FetchMeta, QueryStatus, RawQueryKey

if TYPE_CHECKING:
    from querykit.client import QueryClient

R = TypeVar("R")

logger = logging.getLogger(__name__)


class QueryCache(Notifier):
    """Owns every :class:`Query` of a client.

    Only the cache adds or removes entries; observers ask it to build or
    look up queries but never touch the registry directly.
    """

    def __init__(self, *, storage: AsyncStorageAdapter | None = None) -> None:
        super().__init__()
        self._queries: dict[QueryKey, Query[Any, Any]] = {}
        self._storage = storage
        self._background_tasks: set[asyncio.Task[Any]] = set()

    @property
    def storage(self) -> AsyncStorageAdapter | None:
        return self._storage

    @property
    def queries(self) -> Mapping[QueryKey, Query[Any, Any]]:
        """Read-only view of the registry."""
        return MappingProxyType(self._queries)

    def __len__(self) -> int:
        return len(self._queries)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, QueryKey):
            return key in self._queries
        try:
            return as_query_key(key) in self._queries  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Initialize the storage adapter, if any."""
        if self._storage is None:
            return
        await self._storage.initialize()
        try:
            count = await self._storage.length()
        except ConfigurationError:
            raise
        except Exception:
            logger.warning("Failed to inspect query storage", exc_info=True)
            return
        logger.debug("Query storage holds %d persisted queries", count)

    async def dispose(self) -> None:
        """Stop all timers, wait for pending storage writes and close storage."""
        for query in self._queries.values():
            query.cancel_timers()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        if self._storage is not None:
            await self._storage.dispose()
        self.dispose_notifier()

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def get(self, key: RawQueryKey | QueryKey) -> Query[Any, Any]:
        """Return the query for ``key`` or raise :class:`QueryNotFoundError`."""
        query_key = as_query_key(key)
        query = self._queries.get(query_key)
        if query is None:
            raise QueryNotFoundError(query_key)
        return query

    def find(self, key: RawQueryKey | QueryKey) -> Query[Any, Any] | None:
        return self._queries.get(as_query_key(key))

    def find_all(
        self, key: RawQueryKey | QueryKey | None = None, *, exact: bool = False
    ) -> list[Query[Any, Any]]:
        """Queries whose key equals ``key`` (exact) or starts with it."""
        if key is None:
            return list(self._queries.values())
        query_key = as_query_key(key)
        if exact:
            query = self._queries.get(query_key)
            return [query] if query is not None else []
        return [q for q in self._queries.values() if q.key.startswith(query_key)]

    def build(
        self,
        key: RawQueryKey | QueryKey,
        client: QueryClient,
        options: ResolvedQueryOptions[Any] | None = None,
    ) -> Query[Any, Any]:
        """Return the query for ``key``, creating and registering it if missing.

        A new query gets a storage hydration task when storage is configured;
        it is exposed as ``query.hydration`` so callers can wait for it.
        """
        query_key = as_query_key(key)
        query = self._queries.get(query_key)
        if query is not None:
            return query

        query = Query(client, query_key)
        if options is not None:
            query.configure(options)
        self.add(query)
        logger.debug("Built query %r", query_key)
        if self._storage is not None:
            decode = options.data_from_storage if options is not None else None
            # Baseline taken now: a result landing before the task starts still wins
            query.hydration = self._spawn(
                self.try_load_from_storage(query, decode, revision=query.revision)
            )
        return query

    def add(self, query: Query[Any, Any]) -> None:
        self._queries[query.key] = query
        self.notify()

    def evict(self, query: Query[Any, Any]) -> None:
        """Deregister ``query`` now, deleting its stored record in the background."""
        if self._queries.get(query.key) is query:
            del self._queries[query.key]
        query.cancel_timers()
        if self._storage is not None:
            self._spawn(self._remove_from_storage(query.key))
        self.notify()

    async def remove(self, query: Query[Any, Any]) -> None:
        """Deregister ``query`` and delete its persisted record."""
        if self._queries.get(query.key) is query:
            del self._queries[query.key]
        query.cancel_timers()
        self.notify()
        await self._remove_from_storage(query.key)

    async def clear(self) -> None:
        """Remove every query and wipe the storage."""
        for query in list(self._queries.values()):
            query.cancel_timers()
        self._queries.clear()
        self.notify()
        if self._storage is None:
            return
        try:
            await self._storage.clear()
        except ConfigurationError:
            raise
        except Exception:
            logger.warning("Failed to clear query storage", exc_info=True)

    # -------------------------------------------------------------------------
    # Dispatch hook
    # -------------------------------------------------------------------------

    def on_query_dispatch(
        self, query: Query[Any, Any], action: DispatchAction, from_storage: bool
    ) -> None:
        """Called by a query after every state transition."""
        if (
            action is DispatchAction.SUCCESS
            and not from_storage
            and self._storage is not None
            and query.state.data is not None
        ):
            self._spawn(self.store_to_storage(query))
        self.notify()

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    async def store_to_storage(self, query: Query[Any, Any]) -> None:
        """Persist the query's current data. Failures are logged, never raised."""
        state = query.state
        if self._storage is None or state.data is None:
            return
        encode = query.data_to_storage
        try:
            record = {
                "data": encode(state.data) if encode is not None else state.data,
                "dataUpdatedAt": state.data_updated_at,
                "status": QueryStatus.SUCCESS.value,
            }
            logger.debug("Storing query %r", query.key)
            await self._storage.set(query.key.serialized, record)
        except ConfigurationError:
            raise
        except Exception:
            logger.warning("Failed to store query %r", query.key, exc_info=True)

    async def try_load_from_storage(
        self,
        query: Query[Any, Any],
        decode: Callable[[Any], Any] | None = None,
        *,
        revision: int | None = None,
    ) -> bool:
        """Hydrate ``query`` from its persisted record.

        Only a record younger than the query's ``cache_duration`` is used. If a
        live result landed after ``revision`` (default: the query's revision on
        entry), the record is discarded: a live result always wins over stored
        data. Applied data is stamped with the current time.

        Returns True when stored data was applied.
        """
        if self._storage is None:
            return False

        if revision is None:
            revision = query.revision
        key = query.key
        try:
            record = await self._storage.get(key.serialized)
            if record is None:
                logger.debug("No stored data for query %r", key)
                return False

            updated_at = record.get("dataUpdatedAt")
            if updated_at is None:
                return False

            age = now_ms() - updated_at
            if age > query.cache_duration:
                logger.debug(
                    "Stored data for query %r is too old (%dms > %dms)",
                    key,
                    age,
                    query.cache_duration,
                )
                return False

            raw = record.get("data")
            data = decode(raw) if decode is not None else raw
        except ConfigurationError:
            raise
        except Exception:
            logger.warning("Failed to load query %r from storage", key, exc_info=True)
            return False

        if query.revision != revision:
            logger.debug("Discarding stored data for %r: a live result landed", key)
            return False
        if self._queries.get(key) is not query or data is None:
            return False

        query.dispatch(
            DispatchAction.SUCCESS,
            data,
            from_storage=True,
            fetch_meta=FetchMeta(attempt=0, started_at=now_ms(), from_storage=True),
        )
        logger.debug("Hydrated query %r from storage", key)
        return True

    async def _remove_from_storage(self, key: QueryKey) -> None:
        if self._storage is None:
            return
        try:
            await self._storage.remove(key.serialized)
        except ConfigurationError:
            raise
        except Exception:
            logger.warning("Failed to remove query %r from storage", key, exc_info=True)

    def _spawn(self, coro: Coroutine[Any, Any, R]) -> asyncio.Task[R]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(self._report_failure)
        return task

    @staticmethod
    def _report_failure(task: asyncio.Task[Any]) -> None:
        # Only ConfigurationError escapes the storage paths
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background storage task failed", exc_info=exc)
