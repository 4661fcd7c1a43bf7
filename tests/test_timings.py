from __future__ import annotations

from datetime import timedelta

import pytest

from datepoll.scheduling.timings import (
    DEFAULT_REMINDER_TIMINGS,
    MAX_TIMING_OFFSET,
    effective_timings,
    is_valid_timing,
    parse_timing,
    timing_label,
)


@pytest.mark.parametrize("token", ["3d", "1d", "8h", "30m", "0m", "120h"])
def test_valid_tokens(token: str) -> None:
    assert is_valid_timing(token)


@pytest.mark.parametrize(
    "token",
    ["", "3", "d", "3w", "1.5h", " 3d", "3d ", "3d\n", "-1d", "3D", "8d", "169h", "1000000d", "9" * 30 + "m"],
)
def test_invalid_tokens(token: str) -> None:
    assert not is_valid_timing(token)
    assert parse_timing(token) is None


def test_parse_timing_units() -> None:
    assert parse_timing("3d") == timedelta(days=3)
    assert parse_timing("8h") == timedelta(hours=8)
    assert parse_timing("30m") == timedelta(minutes=30)


def test_timing_label() -> None:
    assert timing_label("3d") == "3 days"
    assert timing_label("1d") == "1 day"
    assert timing_label("1h") == "1 hour"
    assert timing_label("45m") == "45 minutes"
    assert timing_label("bogus") == "bogus"


def test_empty_timings_fall_back_to_defaults() -> None:
    assert effective_timings([]) == DEFAULT_REMINDER_TIMINGS
    assert effective_timings(None) == DEFAULT_REMINDER_TIMINGS
    assert effective_timings(["2h"]) == ["2h"]

    defaults = effective_timings(None)
    defaults.append("1m")
    assert DEFAULT_REMINDER_TIMINGS == ["3d", "1d", "8h"]


def test_offsets_are_capped_at_one_week() -> None:
    assert MAX_TIMING_OFFSET == timedelta(days=7)
    assert parse_timing("7d") == timedelta(days=7)
    assert parse_timing("168h") == timedelta(days=7)
    assert parse_timing("10080m") == timedelta(days=7)
    assert parse_timing("10081m") is None
