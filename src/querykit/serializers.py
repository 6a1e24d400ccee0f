"""Serializers pairing typed values with an adapter's raw storage form."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class JsonSerializer:
    """Stores values as JSON text."""

    def serialize(self, value: Any) -> str:
        return json.dumps(value, separators=(",", ":"))

    def deserialize(self, raw: bytes | str) -> Any:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)


class ModelSerializer(Generic[T]):
    """JSON serializer for a model type with ``to_json``/``from_json`` hooks.

    Example:
        ModelSerializer(to_json=lambda u: u.as_dict(), from_json=User.from_dict)
    """

    def __init__(
        self,
        *,
        to_json: Callable[[T], Any],
        from_json: Callable[[Any], T],
    ) -> None:
        self._to_json = to_json
        self._from_json = from_json
        self._json = JsonSerializer()

    def serialize(self, value: T) -> str:
        return self._json.serialize(self._to_json(value))

    def deserialize(self, raw: bytes | str) -> T:
        return self._from_json(self._json.deserialize(raw))
