"""Mutation entity: one imperative write and its lifecycle."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from querykit.duration import parse_duration
from querykit.notifier import Notifier
from querykit.query_key import QueryKey, as_query_key
from querykit.query_state import now_ms
from querykit.retry import FixedRetryPolicy, RetryPolicy
from querykit.types import Duration, MutationStatus, RawQueryKey

if TYPE_CHECKING:
    from querykit.mutation_cache import MutationCache

T = TypeVar("T")
V = TypeVar("V")

MutationFn = Callable[[V], Awaitable[T]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MutationState(Generic[T, V]):
    """Snapshot of a mutation."""

    status: MutationStatus = MutationStatus.IDLE
    data: T | None = None
    error: Exception | None = None
    variables: V | None = None
    submitted_at: int | None = None  # Unix timestamp ms

    @property
    def is_idle(self) -> bool:
        return self.status is MutationStatus.IDLE

    @property
    def is_pending(self) -> bool:
        return self.status is MutationStatus.PENDING

    @property
    def is_success(self) -> bool:
        return self.status is MutationStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is MutationStatus.ERROR


@dataclass(frozen=True, slots=True)
class MutationOptions(Generic[T, V]):
    """Callbacks may be plain functions or coroutine functions."""

    mutation_key: RawQueryKey | None = None
    on_mutate: Callable[[V], Any] | None = None
    on_success: Callable[[T, V], Any] | None = None
    on_error: Callable[[Exception, V], Any] | None = None
    on_settled: Callable[[T | None, Exception | None, V], Any] | None = None
    retry_count: int = 0
    retry_delay: Duration = 0

    @property
    def key(self) -> QueryKey | None:
        if self.mutation_key is None:
            return None
        return as_query_key(self.mutation_key)

    @property
    def retry(self) -> RetryPolicy:
        return FixedRetryPolicy(self.retry_count, parse_duration(self.retry_delay))


async def _call(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class Mutation(Notifier, Generic[T, V]):
    """A single run of a mutation function, registered under a numeric id.

    Goes ``IDLE -> PENDING -> SUCCESS | ERROR``. Each execution is its own
    entity; nothing is cached by key.
    """

    def __init__(
        self,
        cache: MutationCache,
        mutation_id: int,
        mutation_fn: MutationFn[V, T],
        options: MutationOptions[T, V] | None = None,
    ) -> None:
        super().__init__()
        self.cache = cache
        self.mutation_id = mutation_id
        self.mutation_fn = mutation_fn
        self.options: MutationOptions[T, V] = options or MutationOptions()
        self.key = self.options.key
        self.state: MutationState[T, V] = MutationState()

    def __repr__(self) -> str:
        return f"Mutation({self.mutation_id}, status={self.state.status.value})"

    async def execute(self, variables: V) -> T:
        """Run the mutation. Failures are recorded in ``state`` and re-raised."""
        self._set_state(
            MutationState(
                status=MutationStatus.PENDING,
                variables=variables,
                submitted_at=now_ms(),
            )
        )
        try:
            await _call(self.options.on_mutate, variables)
            data = await self._run(variables)
            await _call(self.options.on_success, data, variables)
        except Exception as exc:
            self._set_state(
                replace(self.state, status=MutationStatus.ERROR, error=exc)
            )
            await self._settle_callbacks(None, exc, variables)
            raise

        self._set_state(
            replace(self.state, status=MutationStatus.SUCCESS, data=data, error=None)
        )
        await self._settle_callbacks(data, None, variables)
        return data

    async def _run(self, variables: V) -> T:
        retry = self.options.retry
        attempt = 0
        while True:
            try:
                return await self.mutation_fn(variables)
            except Exception as exc:
                delay = retry(attempt, exc)
                if delay is None:
                    raise
                attempt += 1
                logger.debug(
                    "Mutation %d failed (%r), retry %d in %dms",
                    self.mutation_id,
                    exc,
                    attempt,
                    delay,
                )
                await asyncio.sleep(delay / 1000)

    async def _settle_callbacks(
        self, data: T | None, error: Exception | None, variables: V
    ) -> None:
        # Hook failures never change the recorded outcome
        try:
            if error is not None:
                await _call(self.options.on_error, error, variables)
            await _call(self.options.on_settled, data, error, variables)
        except Exception:
            logger.exception("Mutation %d callback raised", self.mutation_id)

    def _set_state(self, state: MutationState[T, V]) -> None:
        self.state = state
        self.notify()
        self.cache.notify()
