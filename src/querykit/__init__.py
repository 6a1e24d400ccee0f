"""querykit - async data-fetching cache with deduplication, retries and persistence."""

from contextlib import suppress

# Adapters (async only)
from querykit.adapters import (
    AsyncMemoryAdapter,
    AsyncStorageAdapter,
    CustomStorageAdapter,
    StorageSerializer,
)
from querykit.client import QueryClient

# Duration parsing
from querykit.duration import parse_duration
from querykit.errors import (
    ConfigurationError,
    QueryKitError,
    QueryNotFoundError,
    StorageError,
)
from querykit.lazy_query import LazyQuery, LazyQueryResult
from querykit.mutation import Mutation, MutationOptions, MutationState
from querykit.mutation_cache import MutationCache
from querykit.mutation_observer import MutationObserver, MutationResult
from querykit.observer import Observer, QueryResult
from querykit.options import DefaultQueryOptions, QueryOptions
from querykit.query import Query
from querykit.query_cache import QueryCache
from querykit.query_key import QueryKey
from querykit.query_state import QueryState
from querykit.retry import FixedRetryPolicy, RetryPolicy
from querykit.serializers import JsonSerializer, ModelSerializer

# Core types
from querykit.types import (
    DispatchAction,
    Duration,
    FetchMeta,
    MutationStatus,
    QueryStatus,
    RefetchOnMount,
)

# Optional adapter imports - only available when dependencies are installed
with suppress(ImportError):
    from querykit.adapters import AsyncRedisAdapter

__version__ = "0.1.0"

__all__ = [
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
    "ConfigurationError",
    "CustomStorageAdapter",
    "DefaultQueryOptions",
    "DispatchAction",
    "Duration",
    "FetchMeta",
    "FixedRetryPolicy",
    "JsonSerializer",
    "LazyQuery",
    "LazyQueryResult",
    "ModelSerializer",
    "Mutation",
    "MutationCache",
    "MutationObserver",
    "MutationOptions",
    "MutationResult",
    "MutationState",
    "MutationStatus",
    "Observer",
    "Query",
    "QueryCache",
    "QueryClient",
    "QueryKey",
    "QueryKitError",
    "QueryNotFoundError",
    "QueryOptions",
    "QueryResult",
    "QueryState",
    "QueryStatus",
    "RefetchOnMount",
    "RetryPolicy",
    "StorageError",
    "StorageSerializer",
    "parse_duration",
]
