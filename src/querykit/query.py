"""Query entity: one key's state, its in-flight fetch, retries and timers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from querykit.errors import ConfigurationError, QueryKitError
from querykit.notifier import Notifier
from querykit.options import ResolvedQueryOptions
from querykit.query_key import QueryKey
from querykit.query_state import QueryState, now_ms, reduce
from querykit.retry import RetryPolicy
from querykit.types import DispatchAction, FetchMeta, QueryFn

if TYPE_CHECKING:
    from querykit.client import QueryClient
    from querykit.observer import Observer

T = TypeVar("T")
E = TypeVar("E")

logger = logging.getLogger(__name__)


class Query(Notifier, Generic[T, E]):
    """The cached unit for a single :class:`QueryKey`.

    A query is created and owned by the :class:`~querykit.query_cache.QueryCache`.
    Observers register with it to keep it alive; once the last one leaves, a
    timer of ``cache_duration`` ms starts and the query is evicted when it
    fires. Fetches are deduplicated: while one is running every other caller
    joins it instead of invoking the fetch function again.
    """

    def __init__(self, client: QueryClient, key: QueryKey) -> None:
        super().__init__()
        self.client = client
        self.key = key
        self.state: QueryState[T, E] = QueryState()
        self.fetcher: QueryFn[T] | None = None
        self.retry: RetryPolicy | None = None
        self.cache_duration = client.default_options.cache_duration
        self.stale_duration = client.default_options.stale_duration
        self.data_to_storage: Callable[[T], Any] | None = None
        # Set by the cache when a storage read is scheduled for this query
        self.hydration: asyncio.Task[bool] | None = None
        # Bumped each time a live (non-storage) success or error lands
        self.revision = 0
        self.retry_attempt = 0
        self._in_flight: asyncio.Task[None] | None = None
        self._observers: list[Observer[T, E]] = []
        self._gc_handle: asyncio.TimerHandle | None = None
        self._refetch_interval: int | None = None
        self._interval_task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"Query({self.key!r}, status={self.state.status.value})"

    # -------------------------------------------------------------------------
    # Observers and configuration
    # -------------------------------------------------------------------------

    @property
    def observers(self) -> tuple[Observer[T, E], ...]:
        return tuple(self._observers)

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def is_active(self) -> bool:
        """True when at least one enabled observer is attached."""
        return any(o.options.enabled for o in self._observers)

    @property
    def is_fetch_in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    @property
    def gc_scheduled(self) -> bool:
        return self._gc_handle is not None

    def configure(
        self, options: ResolvedQueryOptions[T], fetcher: QueryFn[T] | None = None
    ) -> None:
        """Adopt an observer's fetch function and resolved options."""
        if fetcher is not None:
            self.fetcher = fetcher
        self.retry = options.retry
        self.cache_duration = options.cache_duration
        self.stale_duration = options.stale_duration
        if options.data_to_storage is not None:
            self.data_to_storage = options.data_to_storage

    def add_observer(self, observer: Observer[T, E]) -> None:
        if observer not in self._observers:
            self._observers.append(observer)
        self._cancel_gc()
        self.update_refetch_interval()

    def remove_observer(self, observer: Observer[T, E]) -> None:
        if observer in self._observers:
            self._observers.remove(observer)
        self.update_refetch_interval()
        # A query already dropped from the cache has nothing left to collect
        if not self._observers and self.client.query_cache.find(self.key) is self:
            self.schedule_gc()

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------

    def dispatch(
        self,
        action: DispatchAction,
        data: T | None = None,
        *,
        error: E | None = None,
        from_storage: bool = False,
        fetch_meta: FetchMeta | None = None,
    ) -> None:
        """Apply ``action`` to the current state and notify.

        Dispatching is synchronous; nothing can interleave with it.
        """
        self.state = reduce(
            self.state,
            action,
            data=data,
            error=error,
            fetch_meta=fetch_meta,
        )
        if from_storage and self.is_fetch_in_flight:
            # Stored data arrived mid-fetch; the live fetch is still running
            self.state = replace(self.state, is_fetching=True)
        settled = action in (DispatchAction.SUCCESS, DispatchAction.ERROR)
        if settled and not from_storage:
            self.revision += 1
            if action is DispatchAction.SUCCESS:
                self.retry_attempt = 0
        self.notify()
        self.client.query_cache.on_query_dispatch(self, action, from_storage)

    def set_data(self, data: T) -> None:
        """Replace the data as if a fetch had just succeeded."""
        self.dispatch(
            DispatchAction.SUCCESS,
            data,
            fetch_meta=FetchMeta(attempt=0, started_at=now_ms()),
        )

    def invalidate(self) -> None:
        self.dispatch(DispatchAction.INVALIDATE)

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def fetch(
        self,
        fetcher: QueryFn[T] | None = None,
        *,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Run the fetch function, or join the one already running.

        Never raises for fetch failures: they end up in ``state.error``.
        Cancelling the caller does not cancel the shared fetch.
        """
        if not self.is_fetch_in_flight:
            fn = fetcher or self.fetcher
            if fn is None:
                raise ConfigurationError(f"No fetch function bound to {self.key!r}")
            policy = retry or self.retry or self._default_retry()
            started_at = now_ms()
            self.dispatch(
                DispatchAction.FETCH,
                fetch_meta=FetchMeta(attempt=0, started_at=started_at),
            )
            self._in_flight = asyncio.get_running_loop().create_task(
                self._run(fn, policy, started_at)
            )
        assert self._in_flight is not None
        await asyncio.shield(self._in_flight)

    async def _run(
        self, fetcher: QueryFn[T], retry: RetryPolicy, started_at: int
    ) -> None:
        attempt = 0
        while True:
            try:
                data = await fetcher()
                if data is None:
                    raise QueryKitError(
                        f"Fetch function for {self.key!r} returned None"
                    )
            except Exception as exc:
                delay = retry(attempt, exc)
                if delay is None:
                    logger.debug(
                        "Fetch for %r failed after %d attempt(s): %r",
                        self.key,
                        attempt + 1,
                        exc,
                    )
                    self.dispatch(
                        DispatchAction.ERROR,
                        error=exc,  # type: ignore[arg-type]
                        fetch_meta=FetchMeta(attempt=attempt, started_at=started_at),
                    )
                    return
                attempt += 1
                self.retry_attempt = attempt
                logger.debug(
                    "Fetch for %r failed (%r), retry %d in %dms",
                    self.key,
                    exc,
                    attempt,
                    delay,
                )
                await asyncio.sleep(delay / 1000)
                continue

            self.dispatch(
                DispatchAction.SUCCESS,
                data,
                fetch_meta=FetchMeta(attempt=attempt, started_at=started_at),
            )
            return

    def _default_retry(self) -> RetryPolicy:
        return self.client.default_options.retry

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def update_refetch_interval(self) -> None:
        """(Re)start the interval timer for the shortest requested interval."""
        intervals = [
            o.options.refetch_interval
            for o in self._observers
            if o.options.enabled and o.options.refetch_interval
        ]
        interval = min(intervals) if intervals else None
        if interval == self._refetch_interval:
            return
        self._refetch_interval = interval
        if self._interval_task is not None:
            self._interval_task.cancel()
            self._interval_task = None
        if interval is not None:
            self._interval_task = asyncio.get_running_loop().create_task(
                self._refetch_every(interval)
            )

    async def _refetch_every(self, interval: int) -> None:
        while True:
            await asyncio.sleep(interval / 1000)
            logger.debug("Interval refetch for %r", self.key)
            await self.fetch()

    def schedule_gc(self) -> None:
        """Start (or restart) the countdown to eviction."""
        self._cancel_gc()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._gc_handle = loop.call_later(self.cache_duration / 1000, self._collect)

    def _cancel_gc(self) -> None:
        if self._gc_handle is not None:
            self._gc_handle.cancel()
            self._gc_handle = None

    def _collect(self) -> None:
        self._gc_handle = None
        if self._observers:
            return
        logger.debug("Collecting unused query %r", self.key)
        self.client.query_cache.evict(self)

    def cancel_timers(self) -> None:
        """Stop GC and interval timers; an in-flight fetch still completes."""
        self._cancel_gc()
        self._refetch_interval = None
        if self._interval_task is not None:
            self._interval_task.cancel()
            self._interval_task = None
