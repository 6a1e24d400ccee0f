"""Lazy queries: observers that only fetch once ``execute()`` is called."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from querykit.observer import Observer, QueryResult
from querykit.options import QueryOptions
from querykit.types import QueryFn, RawQueryKey, RefetchOnMount, Unsubscribe

if TYPE_CHECKING:
    from querykit.client import QueryClient

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class LazyQueryResult(QueryResult[T, E]):
    execute: Callable[[], Awaitable[None]]
    called: bool


class LazyQuery(Generic[T, E]):
    """A query that stays idle until :meth:`execute` is awaited.

    Useful for fetches triggered by user actions such as a form submit.
    ``refetch_on_mount`` defaults to ``NEVER``: executing again over cached
    data still fetches, but re-enabling after a rebind does not.
    """

    def __init__(
        self,
        key: RawQueryKey,
        fetcher: QueryFn[T],
        *,
        client: QueryClient,
        options: QueryOptions[T] | None = None,
    ) -> None:
        options = options or QueryOptions()
        self.called = False
        self.observer: Observer[T, E] = Observer(
            key,
            fetcher,
            client=client,
            options=options.copy_with(
                enabled=False,
                refetch_on_mount=options.refetch_on_mount or RefetchOnMount.NEVER,
            ),
        )

    @property
    def result(self) -> LazyQueryResult[T, E]:
        observer = self.observer
        return LazyQueryResult(
            **QueryResult.fields_from(observer.state, observer.options.stale_duration),
            refetch=observer.refetch,
            execute=self.execute,
            called=self.called,
        )

    async def initialize(self) -> None:
        """Wait for storage hydration; does not fetch."""
        await self.observer.initialize()

    def subscribe(self, listener: Callable[[], None]) -> Unsubscribe:
        return self.observer.subscribe(listener)

    async def execute(self) -> None:
        """Enable the underlying observer and fetch."""
        self.called = True
        revision = self.observer.query.revision
        await self.observer.update_options(
            self.observer.raw_options.copy_with(enabled=True)
        )
        # Enabling may already have fetched through the mount policy
        if self.observer.query.revision == revision:
            await self.observer.fetch()

    async def refetch(self) -> None:
        await self.observer.refetch()

    def destroy(self) -> None:
        self.observer.destroy()
