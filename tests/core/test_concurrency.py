from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

from log_insight.core.aggregator import Aggregator
from log_insight.core.config import AggregatorConfig, SearchConfig
from log_insight.core.models import LogLevel, LogRecord
from log_insight.core.search import SearchEngine, SearchOptions
from log_insight.core.time_window import TimeWindow

T0 = datetime(2025, 12, 30, 8, 0, 0, tzinfo=UTC)
WRITERS = 4
PER_WRITER = 2000


def _run(workers: list[threading.Thread]) -> None:
    for w in workers:
        w.start()
    for w in workers:
        w.join()


def test_concurrent_writers_and_readers_share_one_engine() -> None:
    engine = SearchEngine(SearchConfig(max_records=WRITERS * PER_WRITER), clock=lambda: T0)
    agg = Aggregator(AggregatorConfig(max_entries=WRITERS * PER_WRITER), clock=lambda: T0)
    window = TimeWindow(start=T0 - timedelta(hours=1), end=T0 + timedelta(hours=1))
    errors: list[Exception] = []
    done = threading.Event()

    def writer(n: int) -> None:
        try:
            for i in range(PER_WRITER):
                level = LogLevel.ERROR if i % 10 == 0 else LogLevel.INFO
                record = LogRecord(
                    message=f"worker {n} request {i} timeout",
                    level=level,
                    timestamp=T0 + timedelta(milliseconds=i),
                )
                engine.index(record)
                agg.process(record)
        except Exception as e:
            errors.append(e)

    def reader() -> None:
        try:
            while not done.wait(0.001):
                result = engine.search("+timeout worker", SearchOptions(limit=5))
                assert sum(result.facets.level_counts.values()) == result.total_count
                stats = agg.statistics(window)
                assert sum(stats.count_by_level.values()) == stats.total_count
        except Exception as e:
            errors.append(e)

    readers = [threading.Thread(target=reader) for _ in range(2)]
    for r in readers:
        r.start()
    _run([threading.Thread(target=writer, args=(n,)) for n in range(WRITERS)])
    done.set()
    for r in readers:
        r.join()

    assert errors == []
    assert engine.indexed_count == WRITERS * PER_WRITER
    assert agg.processed_count == WRITERS * PER_WRITER
    assert engine.search("+timeout").total_count == WRITERS * PER_WRITER
