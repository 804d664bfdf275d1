"""Live aggregation of log records into patterns, statistics and anomalies.

:class:`Aggregator` keeps a bounded window of recent records, groups them by
normalized message pattern, maintains a per-minute histogram and compares
incoming traffic against a trailing baseline to raise :class:`Anomaly`
events.

The per-minute histogram and the set of patterns ever seen are never pruned;
they grow with distinct minutes and patterns until :meth:`Aggregator.reset`.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from .anomaly import Anomaly, AnomalyLog, AnomalySeverity, AnomalyType
from .config import AggregatorConfig
from .models import LogLevel, LogRecord
from .patterns import extract_pattern, similarity
from .time_window import TimeWindow, WindowPreset

logger = logging.getLogger(__name__)

AnomalyObserver = Callable[[Anomaly], None]

_ERROR_WINDOW = timedelta(seconds=60)
_DESCRIPTION_PATTERN_CHARS = 100


def _minute_key(ts: datetime) -> int:
    return int(ts.timestamp() // 60)


@dataclass(slots=True)
class AggregatedEntry:
    """Records sharing one pattern."""

    pattern: str
    level: LogLevel
    first_seen: datetime
    last_seen: datetime
    count: int = 0
    sources: set[str] = field(default_factory=set)
    samples: list[LogRecord] = field(default_factory=list)
    metadata_keys: set[str] = field(default_factory=set)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def start(cls, pattern: str, record: LogRecord, *, max_samples: int) -> AggregatedEntry:
        entry = cls(
            pattern=pattern,
            level=record.level,
            first_seen=record.timestamp,
            last_seen=record.timestamp,
        )
        entry.add(record, max_samples=max_samples)
        return entry

    def add(self, record: LogRecord, *, max_samples: int) -> None:
        self.count += 1
        # Timestamps are not monotonic; keep the latest one seen.
        self.last_seen = max(self.last_seen, record.timestamp)
        self.sources.add(record.file_name)
        self.metadata_keys.update(record.metadata)
        if len(self.samples) < max_samples:
            self.samples.append(record)


@dataclass(frozen=True, slots=True)
class PatternStat:
    pattern: str
    count: int
    percentage: float


@dataclass(frozen=True, slots=True)
class Statistics:
    total_count: int
    count_by_level: dict[LogLevel, int]
    count_by_source: dict[str, int]
    entries_per_minute: float
    peak_entries_per_minute: int
    top_patterns: list[PatternStat]
    error_rate: float
    window_duration: timedelta

    @property
    def error_count(self) -> int:
        return self.count_by_level.get(LogLevel.ERROR, 0) + self.count_by_level.get(LogLevel.CRITICAL, 0)


@dataclass(frozen=True, slots=True)
class TimeSeriesPoint:
    timestamp: datetime
    count: int


@dataclass(frozen=True, slots=True)
class ErrorSeriesPoint:
    timestamp: datetime
    error_count: int
    total_count: int


class Aggregator:
    """Pattern grouping, windowed statistics and anomaly detection.

    Every public method holds the instance lock, so reads never observe a
    half-processed record. Pass ``clock`` for deterministic time.
    """

    def __init__(
        self,
        config: AggregatorConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or AggregatorConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.RLock()
        self._observers: list[AnomalyObserver] = []
        self._anomalies = AnomalyLog(
            dedupe_window=self.config.dedupe_window,
            retention=self.config.retention,
        )
        self._init_state()

    def _init_state(self) -> None:
        self._records: deque[LogRecord] = deque(maxlen=self.config.max_entries)
        self._buckets: dict[str, AggregatedEntry] = {}
        self._level_counts: dict[LogLevel, int] = {}
        self._minute_counts: dict[int, int] = {}
        self._known_patterns: set[str] = set()
        self._baseline: Statistics | None = None
        self._baseline_at: datetime | None = None
        self._processed = 0

    # ---------------------------------------------------------------- observers

    def subscribe(self, observer: AnomalyObserver) -> Callable[[], None]:
        """Register a callback for stored anomalies; returns an unsubscribe function."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    # --------------------------------------------------------------- processing

    def process(self, record: LogRecord) -> list[Anomaly]:
        """Fold one record into the aggregates; returns anomalies it raised."""
        with self._lock:
            cfg = self.config
            now = self._clock()
            raised: list[Anomaly] = []

            self._records.append(record)
            self._processed += 1
            self._level_counts[record.level] = self._level_counts.get(record.level, 0) + 1
            minute = _minute_key(record.timestamp)
            self._minute_counts[minute] = self._minute_counts.get(minute, 0) + 1

            if cfg.enable_pattern_detection:
                pattern = extract_pattern(record.message)
                bucket = self._buckets.get(pattern)
                if bucket is not None:
                    bucket.add(record, max_samples=cfg.max_samples)
                else:
                    self._buckets[pattern] = AggregatedEntry.start(pattern, record, max_samples=cfg.max_samples)
                    if pattern not in self._known_patterns:
                        self._known_patterns.add(pattern)
                        if cfg.enable_anomaly_detection and self._baseline is not None:
                            self._check_new_pattern(pattern, record, now, raised)

            baseline = self._baseline
            if cfg.enable_anomaly_detection and baseline is not None:
                self._check_volume(baseline, record, now, raised)
                self._check_errors(baseline, record, now, raised)

            if self._baseline_at is None or now - self._baseline_at > cfg.baseline_window / 4:
                self._refresh_baseline(now)

            if len(self._buckets) > cfg.max_patterns:
                self._evict_patterns()

            observers = list(self._observers)

        for anomaly in raised:
            for observer in observers:
                observer(anomaly)
        return raised

    def process_many(self, records: Iterable[LogRecord]) -> list[Anomaly]:
        raised: list[Anomaly] = []
        for record in records:
            raised.extend(self.process(record))
        return raised

    def _record_anomaly(self, anomaly: Anomaly, now: datetime, raised: list[Anomaly]) -> None:
        if self._anomalies.add(anomaly, now=now):
            raised.append(anomaly)

    def _check_new_pattern(self, pattern: str, record: LogRecord, now: datetime, raised: list[Anomaly]) -> None:
        if len(self._records) <= self.config.new_pattern_min_records:
            return
        severity = AnomalySeverity.MEDIUM if record.level >= LogLevel.ERROR else AnomalySeverity.LOW
        self._record_anomaly(
            Anomaly(
                type=AnomalyType.NEW_PATTERN,
                severity=severity,
                description=f"New log pattern detected: {pattern[:_DESCRIPTION_PATTERN_CHARS]}",
                detected_at=now,
                related_records=(record.id,),
                baseline=0.0,
                actual=1.0,
            ),
            now,
            raised,
        )

    def _check_volume(self, baseline: Statistics, record: LogRecord, now: datetime, raised: list[Anomaly]) -> None:
        per_minute = baseline.entries_per_minute
        if per_minute <= 0:
            return
        current = self._minute_counts.get(_minute_key(now), 0)
        ratio = current / per_minute
        threshold = self.config.anomaly_threshold
        if ratio <= threshold:
            return
        severity = AnomalySeverity.HIGH if ratio > threshold * 2 else AnomalySeverity.MEDIUM
        self._record_anomaly(
            Anomaly(
                type=AnomalyType.VOLUME_SPIKE,
                severity=severity,
                description=f"Log volume spike detected: {current} entries/min vs baseline {per_minute:.2f}",
                detected_at=now,
                related_records=(record.id,),
                baseline=per_minute,
                actual=float(current),
            ),
            now,
            raised,
        )

    def _check_errors(self, baseline: Statistics, record: LogRecord, now: datetime, raised: list[Anomaly]) -> None:
        if record.level < LogLevel.ERROR:
            return
        expected = baseline.error_rate * baseline.entries_per_minute
        if expected <= 0:
            return
        since = now - _ERROR_WINDOW
        recent = sum(1 for r in self._records if r.timestamp > since and r.level >= LogLevel.ERROR)
        if recent / expected <= self.config.anomaly_threshold:
            return
        self._record_anomaly(
            Anomaly(
                type=AnomalyType.ERROR_SPIKE,
                severity=AnomalySeverity.HIGH,
                description=f"Error rate spike detected: {recent} errors/min vs baseline {expected:.2f}",
                detected_at=now,
                related_records=(record.id,),
                baseline=expected,
                actual=float(recent),
            ),
            now,
            raised,
        )

    def _refresh_baseline(self, now: datetime) -> Statistics:
        baseline = self._statistics(TimeWindow.last(self.config.baseline_window, now=now))
        self._baseline = baseline
        self._baseline_at = now
        logger.debug(
            "Baseline refreshed: %.3f entries/min, error rate %.3f",
            baseline.entries_per_minute,
            baseline.error_rate,
        )
        return baseline

    def _evict_patterns(self) -> None:
        excess = len(self._buckets) - self.config.max_patterns
        oldest = sorted(self._buckets.values(), key=lambda b: b.last_seen)[:excess]
        for bucket in oldest:
            del self._buckets[bucket.pattern]
        logger.debug("Evicted %d pattern bucket(s)", len(oldest))

    # ------------------------------------------------------------------ queries

    def _window(self, window: TimeWindow | None) -> TimeWindow:
        if window is not None:
            return window
        return TimeWindow.from_preset(WindowPreset.LAST_HOUR, now=self._clock())

    def _in_window(self, window: TimeWindow) -> list[LogRecord]:
        return [r for r in self._records if window.contains(r.timestamp)]

    def _buckets_in(self, window: TimeWindow) -> list[AggregatedEntry]:
        hits = [b for b in self._buckets.values() if b.last_seen >= window.start and b.first_seen <= window.end]
        return sorted(hits, key=lambda b: b.count, reverse=True)

    def _statistics(self, window: TimeWindow) -> Statistics:
        records = self._in_window(window)
        total = len(records)

        by_level: dict[LogLevel, int] = {}
        by_source: dict[str, int] = {}
        for r in records:
            by_level[r.level] = by_level.get(r.level, 0) + 1
            by_source[r.file_name] = by_source.get(r.file_name, 0) + 1

        duration = window.duration
        minutes = duration.total_seconds() / 60
        per_minute = total / minutes if minutes > 0 else 0.0

        first, last = _minute_key(window.start), _minute_key(window.end)
        peak = max((c for m, c in self._minute_counts.items() if first <= m <= last), default=0)

        top = [
            PatternStat(
                pattern=b.pattern,
                count=b.count,
                percentage=b.count / total * 100 if total else 0.0,
            )
            for b in self._buckets_in(window)[: self.config.top_patterns_limit]
        ]

        errors = by_level.get(LogLevel.ERROR, 0) + by_level.get(LogLevel.CRITICAL, 0)
        return Statistics(
            total_count=total,
            count_by_level=by_level,
            count_by_source=by_source,
            entries_per_minute=per_minute,
            peak_entries_per_minute=peak,
            top_patterns=top,
            error_rate=errors / total if total else 0.0,
            window_duration=duration,
        )

    def statistics(self, window: TimeWindow | None = None) -> Statistics:
        """Statistics over ``window`` (default: the last hour)."""
        with self._lock:
            return self._statistics(self._window(window))

    def aggregated_entries(self, window: TimeWindow | None = None) -> list[AggregatedEntry]:
        """Pattern buckets overlapping ``window``, most frequent first."""
        with self._lock:
            return self._buckets_in(self._window(window))

    def top_patterns(self, limit: int = 10, window: TimeWindow | None = None) -> list[tuple[str, int]]:
        with self._lock:
            return [(b.pattern, b.count) for b in self._buckets_in(self._window(window))[: max(0, limit)]]

    def entries_by_source(self, window: TimeWindow | None = None) -> dict[str, int]:
        with self._lock:
            out: dict[str, int] = {}
            for r in self._in_window(self._window(window)):
                out[r.file_name] = out.get(r.file_name, 0) + 1
            return out

    def entries_by_level(self, window: TimeWindow | None = None) -> dict[LogLevel, int]:
        with self._lock:
            out: dict[LogLevel, int] = {}
            for r in self._in_window(self._window(window)):
                out[r.level] = out.get(r.level, 0) + 1
            return out

    def time_series(
        self,
        window: TimeWindow | None = None,
        granularity: timedelta = timedelta(minutes=1),
    ) -> list[TimeSeriesPoint]:
        """Record counts per ``granularity`` bucket, oldest first; empty buckets omitted."""
        step = _granularity_seconds(granularity)
        with self._lock:
            counts: dict[int, int] = {}
            for r in self._in_window(self._window(window)):
                key = int(r.timestamp.timestamp()) // step
                counts[key] = counts.get(key, 0) + 1
        return [
            TimeSeriesPoint(timestamp=datetime.fromtimestamp(key * step, UTC), count=counts[key])
            for key in sorted(counts)
        ]

    def error_time_series(
        self,
        window: TimeWindow | None = None,
        granularity: timedelta = timedelta(minutes=1),
    ) -> list[ErrorSeriesPoint]:
        step = _granularity_seconds(granularity)
        with self._lock:
            totals: dict[int, int] = {}
            errors: dict[int, int] = {}
            for r in self._in_window(self._window(window)):
                key = int(r.timestamp.timestamp()) // step
                totals[key] = totals.get(key, 0) + 1
                if r.level >= LogLevel.ERROR:
                    errors[key] = errors.get(key, 0) + 1
        return [
            ErrorSeriesPoint(
                timestamp=datetime.fromtimestamp(key * step, UTC),
                error_count=errors.get(key, 0),
                total_count=totals[key],
            )
            for key in sorted(totals)
        ]

    def similar_patterns(self, pattern: str, threshold: float | None = None) -> list[tuple[str, float]]:
        """Known patterns whose similarity to ``pattern`` is at least ``threshold``, best first."""
        if threshold is None:
            threshold = self.config.similarity_threshold
        with self._lock:
            known = list(self._buckets)
        scored = [(p, similarity(pattern, p)) for p in known]
        hits = [(p, s) for p, s in scored if s >= threshold]
        return sorted(hits, key=lambda h: h[1], reverse=True)

    @property
    def processed_count(self) -> int:
        with self._lock:
            return self._processed

    @property
    def pattern_count(self) -> int:
        with self._lock:
            return len(self._buckets)

    @property
    def baseline(self) -> Statistics | None:
        with self._lock:
            return self._baseline

    def level_totals(self) -> dict[LogLevel, int]:
        """Lifetime per-level counts (not bounded by ``max_entries``)."""
        with self._lock:
            return dict(self._level_counts)

    def update_baseline(self) -> Statistics:
        """Recompute the baseline now, regardless of when it was last refreshed."""
        with self._lock:
            return self._refresh_baseline(self._clock())

    def reset(self) -> None:
        """Drop all records, aggregates, anomalies and the baseline."""
        with self._lock:
            self._init_state()
            self._anomalies.clear()

    # ---------------------------------------------------------------- anomalies

    def anomalies(self, min_severity: AnomalySeverity = AnomalySeverity.LOW) -> list[Anomaly]:
        with self._lock:
            return self._anomalies.select(min_severity)

    def clear_anomaly(self, anomaly_id: str) -> bool:
        with self._lock:
            return self._anomalies.remove(anomaly_id)

    def clear_all_anomalies(self) -> None:
        with self._lock:
            self._anomalies.clear()


def _granularity_seconds(granularity: timedelta) -> int:
    step = int(granularity.total_seconds())
    if step < 1:
        raise ValueError("granularity must be at least one second")
    return step
