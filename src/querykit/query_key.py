"""Canonical query keys."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from querykit.types import RawQueryKey


def _canonicalize(parts: Sequence[Any]) -> str:
    return json.dumps(
        list(parts), sort_keys=True, separators=(",", ":"), default=str
    )


class QueryKey:
    """Hashable identity of a query.

    Two keys are equal when their canonical JSON forms are equal, so
    ``QueryKey(["todo", {"id": 1, "page": 2}])`` and
    ``QueryKey(["todo", {"page": 2, "id": 1}])`` name the same query while
    ``QueryKey(["a", "b"])`` and ``QueryKey(["b", "a"])`` do not.
    """

    __slots__ = ("_parts", "_serialized")

    def __init__(self, raw: RawQueryKey | QueryKey) -> None:
        if isinstance(raw, QueryKey):
            parts: tuple[Any, ...] = raw.parts
        elif isinstance(raw, str):
            parts = (raw,)
        elif isinstance(raw, Sequence):
            parts = tuple(raw)
        else:
            raise TypeError(f"Query key must be a str or a sequence, got {type(raw)}")
        if not parts:
            raise ValueError("Query key must have at least one part")
        self._parts = parts
        self._serialized = _canonicalize(parts)

    @classmethod
    def from_serialized(cls, serialized: str) -> QueryKey:
        """Rebuild a key from its storage form."""
        return cls(json.loads(serialized))

    @property
    def parts(self) -> tuple[Any, ...]:
        return self._parts

    @property
    def serialized(self) -> str:
        return self._serialized

    def startswith(self, prefix: RawQueryKey | QueryKey) -> bool:
        """Check if ``prefix`` names a leading run of this key's parts."""
        other = prefix if isinstance(prefix, QueryKey) else QueryKey(prefix)
        if len(other._parts) > len(self._parts):
            return False
        return (
            _canonicalize(self._parts[: len(other._parts)]) == other._serialized
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QueryKey):
            return NotImplemented
        return self._serialized == other._serialized

    def __hash__(self) -> int:
        return hash(self._serialized)

    def __len__(self) -> int:
        return len(self._parts)

    def __repr__(self) -> str:
        return f"QueryKey({self._serialized})"


def as_query_key(raw: RawQueryKey | QueryKey) -> QueryKey:
    return raw if isinstance(raw, QueryKey) else QueryKey(raw)
