"""MutationCache - registry of running and settled mutations."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from querykit.errors import QueryKitError
from querykit.mutation import Mutation, MutationFn, MutationOptions
from querykit.notifier import Notifier
from querykit.query_key import QueryKey, as_query_key
from querykit.types import RawQueryKey

logger = logging.getLogger(__name__)


class MutationCache(Notifier):
    """Tracks mutations under monotonically increasing integer ids."""

    def __init__(self) -> None:
        super().__init__()
        self._mutations: dict[int, Mutation[Any, Any]] = {}
        self._next_id = 0

    @property
    def mutations(self) -> Mapping[int, Mutation[Any, Any]]:
        return MappingProxyType(self._mutations)

    def __len__(self) -> int:
        return len(self._mutations)

    def build(
        self,
        mutation_fn: MutationFn[Any, Any],
        options: MutationOptions[Any, Any] | None = None,
    ) -> Mutation[Any, Any]:
        """Create and register a new mutation."""
        mutation = Mutation(self, self._next_id, mutation_fn, options)
        self._next_id += 1
        self._mutations[mutation.mutation_id] = mutation
        logger.debug("Registered mutation %d", mutation.mutation_id)
        self.notify()
        return mutation

    def get(self, mutation_id: int) -> Mutation[Any, Any]:
        try:
            return self._mutations[mutation_id]
        except KeyError:
            raise QueryKitError(f"Mutation {mutation_id} doesn't exist") from None

    def remove(self, mutation: Mutation[Any, Any] | int) -> None:
        mutation_id = mutation if isinstance(mutation, int) else mutation.mutation_id
        if self._mutations.pop(mutation_id, None) is not None:
            self.notify()

    def clear(self) -> None:
        self._mutations.clear()
        self.notify()

    def find_all(
        self, key: RawQueryKey | QueryKey | None = None
    ) -> list[Mutation[Any, Any]]:
        """Mutations whose key starts with ``key`` (all of them if None)."""
        if key is None:
            return list(self._mutations.values())
        prefix = as_query_key(key)
        return [
            m
            for m in self._mutations.values()
            if m.key is not None and m.key.startswith(prefix)
        ]

    def is_pending(self, key: RawQueryKey | QueryKey | None = None) -> int:
        """Count pending mutations, optionally only those under ``key``."""
        return sum(1 for m in self.find_all(key) if m.state.is_pending)
