"""Exception hierarchy for querykit."""

from __future__ import annotations

from typing import Any


class QueryKitError(Exception):
    """Base class for every error raised by querykit itself."""


class QueryNotFoundError(QueryKitError, KeyError):
    """No query is registered under the requested key."""

    def __init__(self, key: Any) -> None:
        super().__init__(f"Query with key {key} doesn't exist")
        self.key = key

    def __str__(self) -> str:
        return str(self.args[0])


class StorageError(QueryKitError):
    """A storage backend failed to complete an operation."""


class ConfigurationError(QueryKitError):
    """The cache or one of its collaborators was set up incorrectly."""
