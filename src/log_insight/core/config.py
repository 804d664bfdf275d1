"""Engine configuration and environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta

ENV_PREFIX = "LOG_INSIGHT_"


@dataclass(frozen=True, slots=True)
class SearchConfig:
    """Settings for :class:`~log_insight.core.search.SearchEngine`."""

    max_records: int = 10_000
    max_history_items: int = 100

    def __post_init__(self) -> None:
        if self.max_records < 1:
            raise ValueError("max_records must be >= 1")
        if self.max_history_items < 0:
            raise ValueError("max_history_items must be >= 0")


@dataclass(frozen=True, slots=True)
class AggregatorConfig:
    """Settings for :class:`~log_insight.core.aggregator.Aggregator`."""

    max_patterns: int = 1000
    max_entries: int = 10_000
    similarity_threshold: float = 0.8
    enable_pattern_detection: bool = True
    enable_anomaly_detection: bool = True
    baseline_window: timedelta = timedelta(hours=1)
    anomaly_threshold: float = 2.0
    max_samples: int = 5
    top_patterns_limit: int = 10
    new_pattern_min_records: int = 100

    # Anomaly bookkeeping
    dedupe_window: timedelta = timedelta(minutes=5)
    retention: timedelta = timedelta(hours=24)

    def __post_init__(self) -> None:
        if self.max_patterns < 1:
            raise ValueError("max_patterns must be >= 1")
        if self.max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be within [0, 1]")
        if self.baseline_window <= timedelta(0):
            raise ValueError("baseline_window must be positive")
        if self.anomaly_threshold <= 0:
            raise ValueError("anomaly_threshold must be > 0")
        if self.max_samples < 0:
            raise ValueError("max_samples must be >= 0")
        if self.top_patterns_limit < 0:
            raise ValueError("top_patterns_limit must be >= 0")
        if self.new_pattern_min_records < 0:
            raise ValueError("new_pattern_min_records must be >= 0")
        if self.dedupe_window < timedelta(0):
            raise ValueError("dedupe_window must be >= 0")
        if self.retention <= timedelta(0):
            raise ValueError("retention must be positive")


def _env_int(name: str, *, minimum: int) -> int | None:
    key = ENV_PREFIX + name
    raw = os.getenv(key)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}")
    return value


def _env_float(name: str) -> float | None:
    key = ENV_PREFIX + name
    raw = os.getenv(key)
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number") from exc
    if value <= 0:
        raise ValueError(f"{key} must be > 0")
    return value


def resolve_search_config(cfg: SearchConfig | None = None) -> SearchConfig:
    """Return search config with optional env overrides applied."""
    if cfg is None:
        cfg = SearchConfig()

    overrides: dict[str, int] = {}
    max_records = _env_int("MAX_RECORDS", minimum=1)
    if max_records is not None:
        overrides["max_records"] = max_records
    max_history = _env_int("MAX_HISTORY", minimum=0)
    if max_history is not None:
        overrides["max_history_items"] = max_history

    return replace(cfg, **overrides) if overrides else cfg


def resolve_aggregator_config(cfg: AggregatorConfig | None = None) -> AggregatorConfig:
    """Return aggregator config with optional env overrides applied."""
    if cfg is None:
        cfg = AggregatorConfig()

    overrides: dict[str, object] = {}
    max_patterns = _env_int("MAX_PATTERNS", minimum=1)
    if max_patterns is not None:
        overrides["max_patterns"] = max_patterns
    max_entries = _env_int("MAX_ENTRIES", minimum=1)
    if max_entries is not None:
        overrides["max_entries"] = max_entries
    threshold = _env_float("ANOMALY_THRESHOLD")
    if threshold is not None:
        overrides["anomaly_threshold"] = threshold
    window_s = _env_int("BASELINE_WINDOW_SECONDS", minimum=1)
    if window_s is not None:
        overrides["baseline_window"] = timedelta(seconds=window_s)

    return replace(cfg, **overrides) if overrides else cfg
