"""MutationObserver - a consumer's handle for triggering a mutation."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from querykit.mutation import Mutation, MutationFn, MutationOptions, MutationState
from querykit.notifier import Notifier
from querykit.types import MutationStatus, Unsubscribe

if TYPE_CHECKING:
    from querykit.client import QueryClient

T = TypeVar("T")
V = TypeVar("V")

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MutationResult(Generic[T, V]):
    """Read-only snapshot handed to consumers."""

    data: T | None
    error: Exception | None
    variables: V | None
    status: MutationStatus
    is_idle: bool
    is_pending: bool
    is_success: bool
    is_error: bool
    mutate: Callable[[V], Awaitable[MutationState[T, V]]]
    reset: Callable[[], None]


class MutationObserver(Notifier, Generic[T, V]):
    """Runs a mutation function on demand and republishes its state.

    Every :meth:`mutate` creates a fresh :class:`Mutation` in the client's
    mutation cache. Settled mutations from earlier calls are dropped when a
    new one starts; :meth:`destroy` drops them all.
    """

    def __init__(
        self,
        mutation_fn: MutationFn[V, T],
        *,
        client: QueryClient,
        options: MutationOptions[T, V] | None = None,
    ) -> None:
        super().__init__()
        self.mutation_fn = mutation_fn
        self.client = client
        self.options: MutationOptions[T, V] = options or MutationOptions()
        self._mutations: list[tuple[Mutation[T, V], Unsubscribe]] = []
        self._destroyed = False

    @property
    def current(self) -> Mutation[T, V] | None:
        return self._mutations[-1][0] if self._mutations else None

    @property
    def state(self) -> MutationState[T, V]:
        current = self.current
        return current.state if current is not None else MutationState()

    @property
    def result(self) -> MutationResult[T, V]:
        state = self.state
        return MutationResult(
            data=state.data,
            error=state.error,
            variables=state.variables,
            status=state.status,
            is_idle=state.is_idle,
            is_pending=state.is_pending,
            is_success=state.is_success,
            is_error=state.is_error,
            mutate=self.mutate,
            reset=self.reset,
        )

    def set_options(self, options: MutationOptions[T, V]) -> None:
        """Options apply to the next :meth:`mutate` call."""
        self.options = options

    async def mutate(self, variables: V = None) -> MutationState[T, V]:  # type: ignore[assignment]
        """Run the mutation. A failure is captured in the returned state."""
        self._ensure_alive()
        try:
            await self.mutate_async(variables)
        except Exception as exc:
            logger.debug("Mutation failed: %r", exc)
        return self.state

    async def mutate_async(self, variables: V = None) -> T:  # type: ignore[assignment]
        """Run the mutation and return its data, raising on failure."""
        self._ensure_alive()
        self._drop_settled()
        mutation: Mutation[T, V] = self.client.mutation_cache.build(
            self.mutation_fn, self.options
        )
        self._mutations.append((mutation, mutation.subscribe(self.notify)))
        self.notify()
        return await mutation.execute(variables)

    def reset(self) -> None:
        """Forget settled mutations; the observer reads as idle again."""
        self._drop_settled()
        self.notify()

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        for mutation, unsubscribe in self._mutations:
            unsubscribe()
            self.client.mutation_cache.remove(mutation)
        self._mutations.clear()
        self.dispose_notifier()

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("MutationObserver has been destroyed")

    def _drop_settled(self) -> None:
        kept: list[tuple[Mutation[T, V], Unsubscribe]] = []
        for mutation, unsubscribe in self._mutations:
            if mutation.state.is_pending:
                kept.append((mutation, unsubscribe))
                continue
            unsubscribe()
            self.client.mutation_cache.remove(mutation)
        self._mutations = kept
