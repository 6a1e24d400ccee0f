"""Tests for serializers."""

from dataclasses import asdict, dataclass

from querykit import JsonSerializer, ModelSerializer, StorageSerializer


@dataclass
class User:
    id: int
    name: str


class TestJsonSerializer:
    def test_compact_output(self) -> None:
        assert JsonSerializer().serialize({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_deserializes_bytes(self) -> None:
        """Redis hands back bytes."""
        assert JsonSerializer().deserialize(b'{"a":1}') == {"a": 1}

    def test_satisfies_protocol(self) -> None:
        assert isinstance(JsonSerializer(), StorageSerializer)


class TestModelSerializer:
    def test_round_trip(self) -> None:
        serializer = ModelSerializer(to_json=asdict, from_json=lambda d: User(**d))
        raw = serializer.serialize(User(1, "ada"))
        assert raw == '{"id":1,"name":"ada"}'
        assert serializer.deserialize(raw) == User(1, "ada")
