from __future__ import annotations

from datetime import timedelta

import pytest

from log_insight.core.config import (
    AggregatorConfig,
    SearchConfig,
    resolve_aggregator_config,
    resolve_search_config,
)


def test_defaults() -> None:
    assert SearchConfig() == SearchConfig(max_records=10_000, max_history_items=100)
    cfg = AggregatorConfig()
    assert cfg.max_patterns == 1000
    assert cfg.anomaly_threshold == 2.0
    assert cfg.baseline_window == timedelta(hours=1)
    assert cfg.dedupe_window == timedelta(minutes=5)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_patterns": 0},
        {"similarity_threshold": 1.5},
        {"anomaly_threshold": 0},
        {"baseline_window": timedelta(0)},
        {"max_samples": -1},
    ],
)
def test_invalid_aggregator_config(kwargs) -> None:
    with pytest.raises(ValueError):
        AggregatorConfig(**kwargs)


def test_invalid_search_config() -> None:
    with pytest.raises(ValueError):
        SearchConfig(max_records=0)


def test_search_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_INSIGHT_MAX_RECORDS", "50")
    monkeypatch.setenv("LOG_INSIGHT_MAX_HISTORY", "0")
    cfg = resolve_search_config()
    assert cfg.max_records == 50
    assert cfg.max_history_items == 0


def test_search_env_unset_returns_same_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_INSIGHT_MAX_RECORDS", raising=False)
    monkeypatch.delenv("LOG_INSIGHT_MAX_HISTORY", raising=False)
    base = SearchConfig(max_records=7)
    assert resolve_search_config(base) is base


def test_aggregator_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_INSIGHT_MAX_PATTERNS", "10")
    monkeypatch.setenv("LOG_INSIGHT_ANOMALY_THRESHOLD", "3.5")
    monkeypatch.setenv("LOG_INSIGHT_BASELINE_WINDOW_SECONDS", "600")
    cfg = resolve_aggregator_config()
    assert cfg.max_patterns == 10
    assert cfg.anomaly_threshold == 3.5
    assert cfg.baseline_window == timedelta(minutes=10)


def test_env_rejects_non_integer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_INSIGHT_MAX_ENTRIES", "lots")
    with pytest.raises(ValueError, match="LOG_INSIGHT_MAX_ENTRIES must be an integer"):
        resolve_aggregator_config()


def test_env_rejects_out_of_range(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_INSIGHT_MAX_RECORDS", "0")
    with pytest.raises(ValueError, match="LOG_INSIGHT_MAX_RECORDS must be >= 1"):
        resolve_search_config()
