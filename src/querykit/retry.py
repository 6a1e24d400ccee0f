"""Retry policies for failed fetches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from querykit.errors import ConfigurationError


@runtime_checkable
class RetryPolicy(Protocol):
    """Decides whether a failed fetch attempt is retried.

    ``attempt`` is the number of retries already performed for the current
    fetch (0 after the initial call fails). Return the delay in milliseconds
    before the next attempt, or ``None`` to give up.
    """

    def __call__(self, attempt: int, error: Exception) -> int | None: ...


@dataclass(frozen=True, slots=True)
class FixedRetryPolicy:
    """Retry up to ``retry_count`` times, waiting ``retry_delay`` ms each time."""

    retry_count: int = 3
    retry_delay: int = 1000

    def __post_init__(self) -> None:
        if self.retry_count < 0:
            raise ConfigurationError("retry_count must be >= 0")
        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay must be >= 0")

    def __call__(self, attempt: int, error: Exception) -> int | None:
        if attempt >= self.retry_count:
            return None
        return self.retry_delay


NO_RETRY = FixedRetryPolicy(retry_count=0, retry_delay=0)
