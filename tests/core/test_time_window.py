from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from log_insight.core.time_window import (
    TimeWindow,
    WindowPreset,
    parse_iso_dt,
    range_for_hour,
    range_for_month,
    range_for_week,
    range_for_year,
    resolve_time_window,
    resolve_window,
)

NOW = datetime(2025, 12, 31, 12, 0, 0, tzinfo=UTC)


def test_parse_iso_dt_assumes_utc() -> None:
    dt = parse_iso_dt("2025-12-31T10:00:00")
    assert dt == datetime(2025, 12, 31, 10, 0, 0, tzinfo=UTC)


def test_range_for_hour_rounds_to_hour() -> None:
    start, end = range_for_hour("2025-12-31T10")
    assert start == datetime(2025, 12, 31, 10, 0, 0, tzinfo=UTC)
    assert end == datetime(2025, 12, 31, 11, 0, 0, tzinfo=UTC)


def test_range_for_week_invalid_format() -> None:
    with pytest.raises(ValueError):
        range_for_week("2025-52")


def test_range_for_month_invalid_format() -> None:
    with pytest.raises(ValueError):
        range_for_month("2025-W52")


def test_range_for_year() -> None:
    start, end = range_for_year("2025")
    assert start == datetime(2025, 1, 1, 0, 0, 0, tzinfo=UTC)
    assert end == datetime(2026, 1, 1, 0, 0, 0, tzinfo=UTC)


def test_range_for_year_invalid_format() -> None:
    with pytest.raises(ValueError):
        range_for_year("25")


def test_resolve_date_overrides_since_until() -> None:
    since, until = resolve_time_window(
        since="2025-12-31T10:00:00Z",
        until="2025-12-31T11:00:00Z",
        date_="2025-12-30",
    )
    assert since == datetime(2025, 12, 30, 0, 0, 0, tzinfo=UTC)
    assert until == datetime(2025, 12, 31, 0, 0, 0, tzinfo=UTC)


def test_resolve_lookback_overrides_since_until() -> None:
    since, until = resolve_time_window(
        since="2025-12-01T00:00:00Z",
        until="2025-12-02T00:00:00Z",
        days_lookback=3,
        now=NOW,
    )
    assert since == NOW - timedelta(days=3)
    assert until == NOW


def test_resolve_hours_lookback() -> None:
    since, until = resolve_time_window(hours_lookback=6, now=NOW)
    assert since == NOW - timedelta(hours=6)
    assert until == NOW


def test_resolve_lookback_conflict() -> None:
    with pytest.raises(ValueError):
        resolve_time_window(days_lookback=1, hours_lookback=2)


def test_presets() -> None:
    assert WindowPreset.parse("1H") is WindowPreset.LAST_HOUR
    w = TimeWindow.from_preset("15m", now=NOW)
    assert w.start == NOW - timedelta(minutes=15)
    assert w.end == NOW
    assert w.duration == timedelta(minutes=15)
    with pytest.raises(ValueError, match="Unknown window preset"):
        WindowPreset.parse("2h")


def test_time_window_is_closed_and_validated() -> None:
    w = TimeWindow(start=NOW - timedelta(hours=1), end=NOW)
    assert w.contains(NOW)
    assert w.contains(NOW - timedelta(hours=1))
    assert not w.contains(NOW + timedelta(microseconds=1))
    with pytest.raises(ValueError):
        TimeWindow(start=NOW, end=NOW - timedelta(seconds=1))


def test_resolve_window_calendar_selector_excludes_next_day() -> None:
    w = resolve_window(date_="2025-12-30", now=NOW)
    assert w is not None
    assert w.contains(datetime(2025, 12, 30, 23, 59, 59, tzinfo=UTC))
    assert not w.contains(datetime(2025, 12, 31, 0, 0, 0, tzinfo=UTC))


def test_resolve_window_defaults() -> None:
    assert resolve_window(now=NOW) is None
    assert resolve_window(preset="5m", now=NOW) == TimeWindow(start=NOW - timedelta(minutes=5), end=NOW)

    open_end = resolve_window(since="2025-12-31T11:00:00Z", preset="5m", now=NOW)
    assert open_end == TimeWindow(start=NOW - timedelta(hours=1), end=NOW)

    open_start = resolve_window(until="2025-12-31T11:00:00Z", now=NOW)
    assert open_start is not None
    assert open_start.start == datetime.fromtimestamp(0, UTC)
