"""A search engine and an aggregator fed from one record stream."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from log_insight.core.aggregator import Aggregator
from log_insight.core.anomaly import Anomaly
from log_insight.core.config import (
    AggregatorConfig,
    SearchConfig,
    resolve_aggregator_config,
    resolve_search_config,
)
from log_insight.core.models import LogRecord
from log_insight.core.search import SearchEngine

LOGGER = logging.getLogger(__name__)


class LogInsightSession:
    """Owns one :class:`SearchEngine` and one :class:`Aggregator`."""

    def __init__(
        self,
        *,
        search_config: SearchConfig | None = None,
        aggregator_config: AggregatorConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.clock = clock or (lambda: datetime.now(UTC))
        self.search = SearchEngine(search_config, clock=self.clock)
        self.aggregator = Aggregator(aggregator_config, clock=self.clock)

    @classmethod
    def from_env(cls, *, clock: Callable[[], datetime] | None = None) -> LogInsightSession:
        """Build a session with ``LOG_INSIGHT_*`` overrides applied."""
        return cls(
            search_config=resolve_search_config(),
            aggregator_config=resolve_aggregator_config(),
            clock=clock,
        )

    def ingest(self, record: LogRecord) -> list[Anomaly]:
        self.search.index(record)
        return self.aggregator.process(record)

    def ingest_many(self, records: Iterable[LogRecord]) -> list[Anomaly]:
        raised: list[Anomaly] = []
        n = 0
        for record in records:
            raised.extend(self.ingest(record))
            n += 1
        LOGGER.debug("Ingested %d record(s), %d anomaly(ies) raised", n, len(raised))
        return raised

    def reset(self) -> None:
        self.search.clear_index()
        self.search.clear_history()
        self.aggregator.reset()
