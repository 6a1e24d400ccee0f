"""Tests for duration parsing."""

from datetime import timedelta

import pytest

from querykit import parse_duration
from querykit.duration import parse_optional_duration


class TestParseDuration:
    """Tests for parse_duration function."""

    def test_milliseconds(self) -> None:
        assert parse_duration("100ms") == 100
        assert parse_duration("0ms") == 0

    def test_seconds_and_minutes(self) -> None:
        assert parse_duration("30s") == 30_000
        assert parse_duration("5m") == 300_000

    def test_hours_and_days(self) -> None:
        assert parse_duration("2h") == 7_200_000
        assert parse_duration("1d") == 86_400_000

    def test_integer_passthrough(self) -> None:
        """Integers are already milliseconds."""
        assert parse_duration(1000) == 1000
        assert parse_duration(0) == 0

    def test_timedelta(self) -> None:
        assert parse_duration(timedelta(seconds=1, milliseconds=500)) == 1500
        assert parse_duration(timedelta(minutes=5)) == 300_000

    def test_invalid_format(self) -> None:
        for bad in ("invalid", "10x", "s10", "", "10"):
            with pytest.raises(ValueError, match="Invalid duration"):
                parse_duration(bad)

    def test_negative_values_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(-1)
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(timedelta(seconds=-1))

    def test_bool_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(True)

    def test_optional_passes_none_through(self) -> None:
        assert parse_optional_duration(None) is None
        assert parse_optional_duration("1s") == 1000
