"""Tests for RFC 3339 helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tripsync.core.timefmt import parse_rfc3339, to_rfc3339


class TestToRfc3339:
    def test_utc_gets_z_suffix(self) -> None:
        dt = datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)
        assert to_rfc3339(dt) == "2026-04-01T12:00:00.000000Z"

    def test_naive_treated_as_utc(self) -> None:
        assert to_rfc3339(datetime(2026, 4, 1, 12, 0)) == "2026-04-01T12:00:00.000000Z"

    def test_offset_converted(self) -> None:
        tokyo = timezone(timedelta(hours=9))
        dt = datetime(2026, 4, 1, 21, 0, tzinfo=tokyo)
        assert to_rfc3339(dt) == "2026-04-01T12:00:00.000000Z"


class TestParseRfc3339:
    def test_z_suffix(self) -> None:
        dt = parse_rfc3339("2026-04-01T12:00:00.000000Z")
        assert dt == datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)

    def test_offset(self) -> None:
        dt = parse_rfc3339("2026-04-01T21:00:00+09:00")
        assert dt == datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)
        assert dt.tzinfo == timezone.utc

    def test_round_trip(self) -> None:
        dt = datetime(2026, 4, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
        assert parse_rfc3339(to_rfc3339(dt)) == dt

    @pytest.mark.parametrize("value", ["", "yesterday", None, 1712000000])
    def test_rejects_garbage(self, value) -> None:
        with pytest.raises(ValueError):
            parse_rfc3339(value)
