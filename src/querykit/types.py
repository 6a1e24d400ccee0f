"""Core types for querykit."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, TypeVar

T = TypeVar("T")

# "30s", "5m", "2h", "1d", a timedelta, or milliseconds
Duration = str | int | timedelta

# A raw key as supplied by callers: ("todos", 1) or just "todos"
RawQueryKey = str | Sequence[Any]

QueryFn = Callable[[], Awaitable[T]]
Listener = Callable[[], None]
Unsubscribe = Callable[[], None]


class QueryStatus(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class MutationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class DispatchAction(str, Enum):
    FETCH = "fetch"
    SUCCESS = "success"
    ERROR = "error"
    INVALIDATE = "invalidate"


class RefetchOnMount(str, Enum):
    """What an observer does when it mounts over existing data."""

    ALWAYS = "always"
    IF_STALE = "if_stale"
    NEVER = "never"


@dataclass(frozen=True, slots=True)
class FetchMeta:
    """Describes the fetch that produced a state."""

    attempt: int
    started_at: int  # Unix timestamp ms
    from_storage: bool = False
