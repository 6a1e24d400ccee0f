"""Observer - a consumer's handle on one query.

An observer decides *when* its query fetches (mount policy, manual
refetch, refetch interval) and republishes the query's state changes to
its own subscribers. It keeps the query alive while it exists; destroying
it only releases that hold, the cache decides when the query goes away.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from querykit.notifier import Notifier
from querykit.options import QueryOptions, ResolvedQueryOptions
from querykit.query import Query
from querykit.query_key import as_query_key
from querykit.query_state import QueryState
from querykit.types import QueryFn, QueryStatus, RawQueryKey, RefetchOnMount

if TYPE_CHECKING:
    from querykit.client import QueryClient

T = TypeVar("T")
E = TypeVar("E")

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QueryResult(Generic[T, E]):
    """Read-only snapshot handed to consumers."""

    data: T | None
    data_updated_at: int | None
    error: E | None
    error_updated_at: int | None
    status: QueryStatus
    is_loading: bool
    is_success: bool
    is_error: bool
    is_fetching: bool
    has_data: bool
    is_stale: bool
    is_invalidated: bool
    is_refetch_error: bool
    refetch: Callable[[], Awaitable[None]]

    @staticmethod
    def fields_from(
        state: QueryState[T, E], stale_duration: int
    ) -> dict[str, Any]:
        return {
            "data": state.data,
            "data_updated_at": state.data_updated_at,
            "error": state.error,
            "error_updated_at": state.error_updated_at,
            "status": state.status,
            "is_loading": state.is_loading,
            "is_success": state.is_success,
            "is_error": state.is_error,
            "is_fetching": state.is_fetching,
            "has_data": state.has_data,
            "is_stale": state.is_stale(stale_duration),
            "is_invalidated": state.is_invalidated,
            "is_refetch_error": state.is_refetch_error,
        }


class Observer(Notifier, Generic[T, E]):
    """Binds a key, a fetch function and options to a :class:`Query`.

    Usage:
        observer = Observer(["todos"], fetch_todos, client=client)
        observer.subscribe(lambda: render(observer.result))
        await observer.initialize()
        ...
        observer.destroy()

    or ``async with Observer(...) as observer:`` to do both ends.
    """

    def __init__(
        self,
        key: RawQueryKey,
        fetcher: QueryFn[T],
        *,
        client: QueryClient,
        options: QueryOptions[T] | None = None,
    ) -> None:
        super().__init__()
        self.key = as_query_key(key)
        self.fetcher = fetcher
        self.client = client
        self._raw_options: QueryOptions[T] = options or QueryOptions()
        self.options: ResolvedQueryOptions[T] = self._resolve(self._raw_options)
        self._destroyed = False
        self._unsubscribe_query: Callable[[], None] = lambda: None
        self._query: Query[T, E] = self._bind()
        self._unsubscribe_cache = client.query_cache.subscribe(self._ensure_bound)

    def __repr__(self) -> str:
        return f"Observer({self.key!r}, enabled={self.options.enabled})"

    async def __aenter__(self) -> Observer[T, E]:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.destroy()

    @property
    def raw_options(self) -> QueryOptions[T]:
        return self._raw_options

    @property
    def query(self) -> Query[T, E]:
        self._ensure_bound()
        return self._query

    @property
    def state(self) -> QueryState[T, E]:
        return self.query.state

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def result(self) -> QueryResult[T, E]:
        return QueryResult(
            **QueryResult.fields_from(self.state, self.options.stale_duration),
            refetch=self.refetch,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Mount: wait for storage hydration, then apply the mount policy."""
        query = self.query
        if query.hydration is not None:
            await asyncio.shield(query.hydration)
        if self.options.enabled:
            await self._mount()

    async def update_options(self, options: QueryOptions[T]) -> None:
        """Reconfigure; enabling a disabled observer mounts it."""
        was_enabled = self.options.enabled
        self._raw_options = options
        self.options = self._resolve(options)
        query = self.query
        query.configure(self.options, self.fetcher)
        query.update_refetch_interval()
        if self.options.enabled and not was_enabled:
            await self._mount()

    async def fetch(self) -> None:
        """Fetch now, joining a fetch already in flight for this key."""
        await self.query.fetch(self.fetcher, retry=self.options.retry)

    async def refetch(self) -> None:
        await self.fetch()

    def destroy(self) -> None:
        """Release the query. It stays cached until its GC timer fires."""
        if self._destroyed:
            return
        self._destroyed = True
        self._unsubscribe_cache()
        self._unsubscribe_query()
        self._query.remove_observer(self)
        self.dispose_notifier()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _resolve(self, options: QueryOptions[T]) -> ResolvedQueryOptions[T]:
        return options.resolve(self.client.default_query_options)

    def _bind(self) -> Query[T, E]:
        query: Query[T, E] = self.client.query_cache.build(
            self.key, self.client, self.options
        )
        query.configure(self.options, self.fetcher)
        query.add_observer(self)
        self._unsubscribe_query = query.subscribe(self.notify)
        return query

    def _ensure_bound(self) -> None:
        """Rebuild the query if it was removed from the cache under us."""
        if self._destroyed:
            return
        if self.client.query_cache.find(self.key) is self._query:
            return
        logger.debug("Query %r was removed, rebinding observer", self.key)
        self._unsubscribe_query()
        self._query.remove_observer(self)
        # A rebuilt query waits for an explicit enable or fetch
        self._raw_options = self._raw_options.copy_with(enabled=False)
        self.options = self._resolve(self._raw_options)
        self._query = self._bind()
        self.notify()

    def _should_fetch_on_mount(self) -> bool:
        state = self._query.state
        if state.is_fetching:
            return False
        if state.data_updated_at is None:
            # Never loaded: the first enabled mount always fetches
            return True
        policy = self.options.refetch_on_mount
        if policy is RefetchOnMount.ALWAYS:
            return True
        if policy is RefetchOnMount.IF_STALE:
            return state.is_invalidated or state.is_stale(self.options.stale_duration)
        return False

    async def _mount(self) -> None:
        self._ensure_bound()
        if self._should_fetch_on_mount():
            await self.fetch()
