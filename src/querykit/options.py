"""Query configuration: client defaults and per-observer overrides."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Generic, TypeVar

from querykit.duration import parse_duration, parse_optional_duration
from querykit.errors import ConfigurationError
from querykit.retry import FixedRetryPolicy, RetryPolicy
from querykit.types import Duration, RefetchOnMount

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DefaultQueryOptions:
    """Client-wide defaults, used wherever an observer leaves a field unset."""

    refetch_on_mount: RefetchOnMount = RefetchOnMount.ALWAYS
    stale_duration: Duration = 0
    cache_duration: Duration = "5m"
    refetch_interval: Duration | None = None
    retry_count: int = 3
    retry_delay: Duration = "1s"

    def __post_init__(self) -> None:
        # Fail at construction rather than on the first fetch
        parse_duration(self.stale_duration)
        parse_duration(self.cache_duration)
        parse_optional_duration(self.refetch_interval)
        parse_duration(self.retry_delay)
        if self.retry_count < 0:
            raise ConfigurationError("retry_count must be >= 0")


@dataclass(frozen=True, slots=True)
class QueryOptions(Generic[T]):
    """Per-observer options; ``None`` means "use the client default"."""

    enabled: bool = True
    refetch_on_mount: RefetchOnMount | str | None = None
    stale_duration: Duration | None = None
    cache_duration: Duration | None = None
    refetch_interval: Duration | None = None
    retry_count: int | None = None
    retry_delay: Duration | None = None
    retry: RetryPolicy | None = None
    data_from_storage: Callable[[Any], T] | None = None
    data_to_storage: Callable[[T], Any] | None = None

    def copy_with(self, **changes: Any) -> QueryOptions[T]:
        return replace(self, **changes)

    def resolve(self, defaults: DefaultQueryOptions) -> ResolvedQueryOptions[T]:
        """Merge with client defaults and normalise every duration to ms."""
        retry = self.retry
        if retry is None:
            retry = FixedRetryPolicy(
                retry_count=(
                    self.retry_count
                    if self.retry_count is not None
                    else defaults.retry_count
                ),
                retry_delay=parse_duration(
                    self.retry_delay
                    if self.retry_delay is not None
                    else defaults.retry_delay
                ),
            )
        interval = (
            self.refetch_interval
            if self.refetch_interval is not None
            else defaults.refetch_interval
        )
        return ResolvedQueryOptions(
            enabled=self.enabled,
            refetch_on_mount=RefetchOnMount(
                self.refetch_on_mount or defaults.refetch_on_mount
            ),
            stale_duration=parse_duration(
                self.stale_duration
                if self.stale_duration is not None
                else defaults.stale_duration
            ),
            cache_duration=parse_duration(
                self.cache_duration
                if self.cache_duration is not None
                else defaults.cache_duration
            ),
            refetch_interval=parse_optional_duration(interval) or None,
            retry=retry,
            data_from_storage=self.data_from_storage,
            data_to_storage=self.data_to_storage,
        )


@dataclass(frozen=True, slots=True)
class ResolvedQueryOptions(Generic[T]):
    """Fully resolved options with durations in milliseconds."""

    enabled: bool
    refetch_on_mount: RefetchOnMount
    stale_duration: int
    cache_duration: int
    refetch_interval: int | None
    retry: RetryPolicy = field(default_factory=FixedRetryPolicy)
    data_from_storage: Callable[[Any], T] | None = None
    data_to_storage: Callable[[T], Any] | None = None
