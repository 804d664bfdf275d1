from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from log_insight.core.aggregator import Aggregator
from log_insight.core.config import AggregatorConfig
from log_insight.core.models import LogLevel
from log_insight.core.time_window import TimeWindow

T0 = datetime(2025, 12, 30, 8, 0, 0, tzinfo=UTC)
QUIET = AggregatorConfig(enable_anomaly_detection=False)


def test_similar_messages_share_one_bucket(clock, make_record) -> None:
    agg = Aggregator(AggregatorConfig(enable_anomaly_detection=False, max_samples=1), clock=clock)
    agg.process(make_record("user 42 logged in", file="/srv/auth.py", metadata={"ip": "x"}))
    agg.process(make_record("user 99 logged in", file="/srv/session.py", metadata={"ua": "y"}))

    entries = agg.aggregated_entries()
    assert len(entries) == 1
    entry = entries[0]
    assert entry.pattern == "user <NUM> logged in"
    assert entry.count == 2
    assert entry.sources == {"auth.py", "session.py"}
    assert entry.metadata_keys == {"ip", "ua"}
    assert [r.message for r in entry.samples] == ["user 42 logged in"]


def test_last_seen_only_moves_forward(clock, make_record) -> None:
    agg = Aggregator(QUIET, clock=clock)
    agg.process(make_record("tick", ts=T0))
    agg.process(make_record("tick", ts=T0 - timedelta(minutes=5)))

    entry = agg.aggregated_entries()[0]
    assert entry.first_seen == T0
    assert entry.last_seen == T0


def test_evicts_least_recently_seen_bucket(clock, make_record) -> None:
    clock.now = T0 + timedelta(minutes=1)
    agg = Aggregator(AggregatorConfig(enable_anomaly_detection=False, max_patterns=3), clock=clock)
    for i, msg in enumerate(["alpha", "beta", "gamma", "alpha", "delta"]):
        agg.process(make_record(msg, ts=T0 + timedelta(seconds=i)))

    assert agg.pattern_count == 3
    assert {e.pattern for e in agg.aggregated_entries()} == {"alpha", "gamma", "delta"}
    # Eviction does not touch the stored records.
    assert agg.statistics().total_count == 5


def test_statistics_over_window(clock, make_record) -> None:
    agg = Aggregator(QUIET, clock=clock)
    agg.process(make_record("old stuff", ts=T0 - timedelta(hours=2)))
    agg.process(make_record("db error 1", LogLevel.ERROR, ts=T0 - timedelta(minutes=30), file="db.py"))
    agg.process(make_record("request ok", ts=T0 - timedelta(minutes=10), file="/app/api.py"))
    agg.process(make_record("request ok", ts=T0 - timedelta(minutes=10, seconds=-5), file="/app/api.py"))
    agg.process(make_record("db error 2", LogLevel.CRITICAL, ts=T0, file="db.py"))

    stats = agg.statistics(TimeWindow.last(timedelta(hours=1), now=T0))

    assert stats.total_count == 4
    assert stats.count_by_level == {LogLevel.ERROR: 1, LogLevel.INFO: 2, LogLevel.CRITICAL: 1}
    assert stats.count_by_source == {"db.py": 2, "api.py": 2}
    assert stats.entries_per_minute == pytest.approx(4 / 60)
    assert stats.peak_entries_per_minute == 2
    assert stats.error_rate == pytest.approx(0.5)
    assert stats.error_count == 2
    assert stats.window_duration == timedelta(hours=1)
    assert [(p.pattern, p.count, p.percentage) for p in stats.top_patterns] == [
        ("db error <NUM>", 2, 50.0),
        ("request ok", 2, 50.0),
    ]


def test_top_patterns_limit_from_config(clock, make_record) -> None:
    agg = Aggregator(AggregatorConfig(enable_anomaly_detection=False, top_patterns_limit=1), clock=clock)
    for msg in ["a1 x", "b2 y", "b2 y"]:
        agg.process(make_record(msg))

    assert [p.pattern for p in agg.statistics().top_patterns] == ["b2 y"]
    assert agg.top_patterns(limit=5) == [("b2 y", 2), ("a1 x", 1)]


def test_empty_window_statistics(clock) -> None:
    stats = Aggregator(QUIET, clock=clock).statistics()
    assert stats.total_count == 0
    assert stats.error_rate == 0.0
    assert stats.peak_entries_per_minute == 0
    assert stats.top_patterns == []


def test_breakdowns_and_time_series(clock, make_record) -> None:
    agg = Aggregator(QUIET, clock=clock)
    agg.process(make_record("a", ts=T0 - timedelta(minutes=2, seconds=30), file="x.py"))
    agg.process(make_record("b", LogLevel.ERROR, ts=T0 - timedelta(minutes=2, seconds=10), file="x.py"))
    agg.process(make_record("c", ts=T0, file="y.py"))

    assert agg.entries_by_source() == {"x.py": 2, "y.py": 1}
    assert agg.entries_by_level() == {LogLevel.INFO: 2, LogLevel.ERROR: 1}

    series = agg.time_series()
    assert [(p.timestamp, p.count) for p in series] == [
        (T0 - timedelta(minutes=3), 2),
        (T0, 1),
    ]

    errors = agg.error_time_series(granularity=timedelta(minutes=5))
    assert [(p.timestamp, p.error_count, p.total_count) for p in errors] == [
        (T0 - timedelta(minutes=5), 1, 2),
        (T0, 0, 1),
    ]

    with pytest.raises(ValueError):
        agg.time_series(granularity=timedelta(0))


def test_similar_patterns(clock, make_record) -> None:
    agg = Aggregator(QUIET, clock=clock)
    for msg in ["user 1 logged in", "user 2 logged out", "disk full"]:
        agg.process(make_record(msg))

    hits = agg.similar_patterns("user <NUM> logged in")
    assert [p for p, _ in hits] == ["user <NUM> logged in", "user <NUM> logged out"]
    assert hits[0][1] == 1.0
    assert agg.similar_patterns("user <NUM> logged in", threshold=1.0) == [("user <NUM> logged in", 1.0)]


def test_pattern_detection_disabled(clock, make_record) -> None:
    agg = Aggregator(AggregatorConfig(enable_pattern_detection=False, enable_anomaly_detection=False), clock=clock)
    agg.process(make_record("user 1 logged in"))

    assert agg.aggregated_entries() == []
    assert agg.statistics().total_count == 1


def test_record_window_is_bounded_but_totals_are_not(clock, make_record) -> None:
    agg = Aggregator(AggregatorConfig(enable_anomaly_detection=False, max_entries=2), clock=clock)
    for _ in range(3):
        agg.process(make_record("tick", LogLevel.WARNING))

    assert agg.statistics().total_count == 2
    assert agg.level_totals() == {LogLevel.WARNING: 3}
    assert agg.processed_count == 3


def test_reset_clears_everything(clock, make_record) -> None:
    agg = Aggregator(clock=clock)
    agg.process(make_record("tick"))
    agg.reset()

    assert agg.pattern_count == 0
    assert agg.processed_count == 0
    assert agg.baseline is None
    assert agg.statistics().total_count == 0


def test_update_baseline_uses_trailing_window(clock, make_record) -> None:
    agg = Aggregator(AggregatorConfig(baseline_window=timedelta(minutes=10)), clock=clock)
    agg.process(make_record("tick", ts=T0 - timedelta(minutes=20)))
    agg.process(make_record("tick", ts=T0 - timedelta(minutes=1)))

    baseline = agg.update_baseline()
    assert baseline.total_count == 1
    assert baseline.entries_per_minute == pytest.approx(0.1)
