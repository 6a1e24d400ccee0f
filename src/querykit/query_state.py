"""Query state snapshots and the dispatch reducer."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Generic, TypeVar

from querykit.types import DispatchAction, FetchMeta, QueryStatus

T = TypeVar("T")
E = TypeVar("E")


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class QueryState(Generic[T, E]):
    """Immutable snapshot of a query at one point in time."""

    data: T | None = None
    error: E | None = None
    data_updated_at: int | None = None  # Unix timestamp ms
    error_updated_at: int | None = None  # Unix timestamp ms
    is_fetching: bool = False
    status: QueryStatus = QueryStatus.LOADING
    is_invalidated: bool = False
    is_refetch_error: bool = False
    fetch_meta: FetchMeta | None = None

    @property
    def is_loading(self) -> bool:
        return self.status is QueryStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status is QueryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is QueryStatus.ERROR

    @property
    def has_data(self) -> bool:
        return self.data is not None

    def is_stale(self, stale_duration: int, now: int | None = None) -> bool:
        """Check if data is older than ``stale_duration`` milliseconds.

        A state that never received data is not stale.
        """
        if self.data_updated_at is None:
            return False
        if now is None:
            now = now_ms()
        return now > self.data_updated_at + stale_duration


def reduce(
    state: QueryState[T, E],
    action: DispatchAction,
    *,
    data: T | None = None,
    error: E | None = None,
    fetch_meta: FetchMeta | None = None,
    now: int | None = None,
) -> QueryState[T, E]:
    """Return the state that follows ``state`` after ``action``.

    Pure: never mutates ``state`` and reads no clock when ``now`` is given.
    """
    if now is None:
        now = now_ms()

    if action is DispatchAction.FETCH:
        return replace(
            state,
            is_fetching=True,
            is_invalidated=False,
            fetch_meta=fetch_meta or state.fetch_meta,
        )

    if action is DispatchAction.SUCCESS:
        if data is None:
            raise ValueError("success requires data")
        return replace(
            state,
            data=data,
            error=None,
            data_updated_at=now,
            status=QueryStatus.SUCCESS,
            is_fetching=False,
            is_invalidated=False,
            is_refetch_error=False,
            fetch_meta=fetch_meta or state.fetch_meta,
        )

    if action is DispatchAction.ERROR:
        if error is None:
            raise ValueError("error requires an error")
        # A failed refetch keeps the data it was refreshing
        refetch_failed = state.status is QueryStatus.SUCCESS
        return replace(
            state,
            error=error,
            error_updated_at=now,
            status=QueryStatus.SUCCESS if refetch_failed else QueryStatus.ERROR,
            is_fetching=False,
            is_refetch_error=refetch_failed,
        )

    if action is DispatchAction.INVALIDATE:
        return replace(state, is_invalidated=True)

    raise ValueError(f"Unknown action: {action!r}")
