"""Full-text search over indexed log records.

The engine keeps a bounded record store and an inverted index. A search:

1. parses the query string,
2. narrows candidates through the inverted index (an optimization only),
3. re-checks every candidate against options, field filters and terms,
4. scores, highlights and facets the matched set,
5. sorts, then applies offset/limit.

All public methods are serialized on one re-entrant lock per engine.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable, Collection, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, tzinfo
from enum import Enum
from typing import Any

from .config import SearchConfig
from .index import InvertedIndex, RecordStore
from .models import LogLevel, LogRecord, normalize_ts
from .query import FieldFilter, Query, Term, parse_query
from .saved import SavedSearch, SearchHistory, SearchHistoryItem
from .tokenizer import tokenize

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 10
OPTIONAL_TERM_WEIGHT = 0.5
REQUIRED_TERM_WEIGHT = 1.0
ERROR_LEVEL_BOOST = 1.2


class SortField(str, Enum):
    TIMESTAMP = "timestamp"
    LEVEL = "level"
    MESSAGE = "message"
    RELEVANCE = "relevance"


class SortOrder(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass(frozen=True, slots=True)
class SearchOptions:
    """Filters, sorting, pagination and highlighting for one search."""

    levels: Collection[LogLevel] | None = None
    start: datetime | None = None
    end: datetime | None = None
    source_files: Collection[str] | None = None  # file basenames
    functions: Collection[str] | None = None
    metadata: Mapping[str, str] | None = None
    case_sensitive: bool = False
    use_regex: bool = False
    limit: int | None = None
    offset: int = 0
    sort_by: SortField = SortField.TIMESTAMP
    sort_order: SortOrder = SortOrder.DESCENDING
    highlight: bool = True
    highlight_prefix: str = "**"
    highlight_suffix: str = "**"
    facet_tz: tzinfo | None = None  # None -> local time for hour facets

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be >= 0")
        if self.offset < 0:
            raise ValueError("offset must be >= 0")
        if self.levels is not None:
            object.__setattr__(self, "levels", frozenset(self.levels))
        if self.source_files is not None:
            object.__setattr__(self, "source_files", frozenset(self.source_files))
        if self.functions is not None:
            object.__setattr__(self, "functions", frozenset(self.functions))
        if self.start is not None:
            object.__setattr__(self, "start", normalize_ts(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", normalize_ts(self.end))


@dataclass(frozen=True, slots=True)
class MatchedRecord:
    record: LogRecord
    score: float
    highlighted_message: str | None = None
    matched_terms: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Facets:
    """Count breakdowns over the full (pre-pagination) matched set."""

    level_counts: dict[LogLevel, int] = field(default_factory=dict)
    source_counts: dict[str, int] = field(default_factory=dict)
    hour_counts: dict[int, int] = field(default_factory=dict)
    metadata_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SearchResult:
    records: list[MatchedRecord]
    total_count: int
    execution_time: float  # seconds
    query: str
    facets: Facets

    @property
    def ids(self) -> list[str]:
        return [m.record.id for m in self.records]


_Matcher = Callable[[str], bool]

_SORT_KEYS: dict[SortField, Callable[[MatchedRecord], Any]] = {
    SortField.TIMESTAMP: lambda m: m.record.timestamp,
    SortField.LEVEL: lambda m: m.record.level.rank,
    SortField.MESSAGE: lambda m: m.record.message,
    SortField.RELEVANCE: lambda m: m.score,
}


def _compile_matcher(term: Term, *, case_sensitive: bool, use_regex: bool) -> _Matcher:
    """Build a predicate testing one term against a message."""
    if use_regex:
        try:
            rx = re.compile(term.text, 0 if case_sensitive else re.IGNORECASE)
        except re.error as e:
            logger.debug("Invalid regex term %r never matches: %s", term.text, e)
            return lambda _message: False
        return lambda message: rx.search(message) is not None

    if case_sensitive:
        needle = term.text
        return lambda message: needle in message
    needle = term.text.lower()
    return lambda message: needle in message.lower()


def _field_value(record: LogRecord, name: str) -> str | None:
    key = name.lower()
    if key == "level":
        return record.level.label
    if key in ("file", "source"):
        return record.file_name
    if key in ("function", "func"):
        return record.function
    if key == "line":
        return str(record.line)
    return record.metadata.get(name)


def _match_field_filter(flt: FieldFilter, record: LogRecord, *, case_sensitive: bool) -> bool:
    actual = _field_value(record, flt.field)
    if actual is None:
        return False
    expected = flt.value
    if not case_sensitive:
        actual = actual.lower()
        expected = expected.lower()
    return flt.op.compare(actual, expected)


def highlight_terms(
    text: str,
    terms: Iterable[str],
    *,
    prefix: str = "**",
    suffix: str = "**",
    case_sensitive: bool = False,
) -> str:
    """Wrap every occurrence of the terms in one pass, preferring longer terms.

    >>> highlight_terms("timeout", ["time", "timeout"])
    '**timeout**'
    """
    alternatives = sorted({t for t in terms if t}, key=len, reverse=True)
    if not alternatives:
        return text
    flags = 0 if case_sensitive else re.IGNORECASE
    rx = re.compile("|".join(re.escape(t) for t in alternatives), flags)
    return rx.sub(lambda m: f"{prefix}{m.group(0)}{suffix}", text)


class SearchEngine:
    """Single-writer search index with saved searches and history.

    Usage::

        engine = SearchEngine()
        engine.index(record)
        result = engine.search("+timeout db", SearchOptions(levels={LogLevel.ERROR}))
    """

    def __init__(
        self,
        config: SearchConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or SearchConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.RLock()
        self._store = RecordStore(self.config.max_records)
        self._index = InvertedIndex()
        self._saved: dict[str, SavedSearch] = {}
        self._history = SearchHistory(self.config.max_history_items)

    # ------------------------------------------------------------------ indexing

    def index(self, record: LogRecord) -> None:
        """Store a record and add its tokens to the inverted index."""
        with self._lock:
            dropped = self._store.append(record)
            self._index.add(record)
            if dropped:
                logger.debug("Record store full; dropped %d oldest record(s)", len(dropped))

    def index_many(self, records: Iterable[LogRecord]) -> int:
        n = 0
        with self._lock:
            for record in records:
                self.index(record)
                n += 1
        return n

    def clear_index(self) -> None:
        with self._lock:
            self._store.clear()
            self._index.clear()

    @property
    def indexed_count(self) -> int:
        with self._lock:
            return len(self._store)

    @property
    def token_count(self) -> int:
        with self._lock:
            return len(self._index)

    # ----------------------------------------------------------------- searching

    @staticmethod
    def parse_query(raw: str) -> Query:
        return parse_query(raw)

    def search(self, query: str | Query, options: SearchOptions | None = None) -> SearchResult:
        """Run a query and return scored, faceted, paginated results."""
        options = options or SearchOptions()
        parsed = query if isinstance(query, Query) else parse_query(query)

        with self._lock:
            started = time.perf_counter()

            matchers = [
                (term, _compile_matcher(term, case_sensitive=options.case_sensitive, use_regex=options.use_regex))
                for term in parsed.terms
            ]
            scored_count = len(parsed.scored_terms)

            matched: list[MatchedRecord] = []
            for record in self._candidates(parsed, options):
                m = self._match(record, parsed, matchers, scored_count, options)
                if m is not None:
                    matched.append(m)

            matched = self._sort(matched, options)
            facets = self._facets(matched, options)
            total = len(matched)

            page = matched[options.offset :]
            if options.limit is not None:
                page = page[: options.limit]

            elapsed = time.perf_counter() - started
            self._history.record(parsed.raw, result_count=total, now=self._clock())

        logger.debug("Search %r matched %d record(s) in %.2f ms", parsed.raw, total, elapsed * 1000)
        return SearchResult(
            records=page,
            total_count=total,
            execution_time=elapsed,
            query=parsed.raw,
            facets=facets,
        )

    def _candidates(self, query: Query, options: SearchOptions) -> list[LogRecord]:
        """Narrow the store to records that can still match.

        Only required terms that are a single token narrow the set. A record
        holding such a term as a substring has an indexed token containing it,
        so the result is always a superset of the matches. Optional terms,
        phrases and regex terms never narrow.
        """
        candidate_ids: set[str] | None = None
        if not options.use_regex:
            for term in query.terms:
                if not term.required or term.excluded:
                    continue
                needle = term.text.lower()
                if tokenize(needle) != [needle]:
                    continue
                ids = self._index.lookup_containing(needle)
                candidate_ids = ids if candidate_ids is None else candidate_ids & ids

        if candidate_ids is None:
            return list(self._store)
        return self._store.select(candidate_ids)

    def _match(
        self,
        record: LogRecord,
        query: Query,
        matchers: list[tuple[Term, _Matcher]],
        scored_count: int,
        options: SearchOptions,
    ) -> MatchedRecord | None:
        if options.levels is not None and record.level not in options.levels:
            return None
        if options.start is not None and record.timestamp < options.start:
            return None
        if options.end is not None and record.timestamp > options.end:
            return None
        if options.source_files is not None and record.file_name not in options.source_files:
            return None
        if options.functions is not None and record.function not in options.functions:
            return None
        if options.metadata:
            for key, value in options.metadata.items():
                if record.metadata.get(key) != value:
                    return None
        for flt in query.field_filters:
            if not _match_field_filter(flt, record, case_sensitive=options.case_sensitive):
                return None

        matched_terms: list[str] = []
        if not matchers:
            score = 1.0
        else:
            score = 0.0
            for term, hit in matchers:
                found = hit(record.message)
                if term.excluded:
                    if found:
                        return None
                elif term.required:
                    if not found:
                        return None
                    matched_terms.append(term.text)
                    score += REQUIRED_TERM_WEIGHT
                elif found:
                    matched_terms.append(term.text)
                    score += OPTIONAL_TERM_WEIGHT

            if not matched_terms:
                return None
            score = score / scored_count if scored_count else 0.0

        if record.level >= LogLevel.ERROR:
            score *= ERROR_LEVEL_BOOST
        score = min(1.0, score)

        highlighted = None
        if options.highlight and matched_terms:
            highlighted = highlight_terms(
                record.message,
                matched_terms,
                prefix=options.highlight_prefix,
                suffix=options.highlight_suffix,
                case_sensitive=options.case_sensitive,
            )

        return MatchedRecord(
            record=record,
            score=score,
            highlighted_message=highlighted,
            matched_terms=tuple(matched_terms),
        )

    @staticmethod
    def _sort(matched: list[MatchedRecord], options: SearchOptions) -> list[MatchedRecord]:
        key = _SORT_KEYS[options.sort_by]
        return sorted(matched, key=key, reverse=options.sort_order is SortOrder.DESCENDING)

    @staticmethod
    def _facets(matched: list[MatchedRecord], options: SearchOptions) -> Facets:
        facets = Facets()
        for m in matched:
            r = m.record
            facets.level_counts[r.level] = facets.level_counts.get(r.level, 0) + 1
            facets.source_counts[r.file_name] = facets.source_counts.get(r.file_name, 0) + 1
            hour = r.timestamp.astimezone(options.facet_tz).hour
            facets.hour_counts[hour] = facets.hour_counts.get(hour, 0) + 1
            for key in r.metadata:
                facets.metadata_counts[key] = facets.metadata_counts.get(key, 0) + 1
        return facets

    # ------------------------------------------------------------ saved searches

    def save_search(self, name: str, query: str) -> SavedSearch:
        with self._lock:
            now = self._clock()
            saved = SavedSearch(name=name, query=query, created_at=now, last_used_at=now)
            self._saved[saved.id] = saved
            return saved

    def saved_searches(self) -> list[SavedSearch]:
        with self._lock:
            return list(self._saved.values())

    def get_saved_search(self, search_id: str) -> SavedSearch | None:
        with self._lock:
            return self._saved.get(search_id)

    def delete_saved_search(self, search_id: str) -> bool:
        with self._lock:
            return self._saved.pop(search_id, None) is not None

    def execute_saved_search(
        self, search_id: str, options: SearchOptions | None = None
    ) -> SearchResult | None:
        """Run a saved search, bumping its usage; None for an unknown id."""
        with self._lock:
            saved = self._saved.get(search_id)
            if saved is None:
                return None
            saved.mark_used(self._clock())
            return self.search(saved.query, options)

    # ------------------------------------------------------ history/suggestions

    def recent_searches(self, limit: int = 10) -> list[str]:
        with self._lock:
            return self._history.recent(limit)

    def history(self) -> list[SearchHistoryItem]:
        with self._lock:
            return self._history.items()

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    def suggestions(self, prefix: str) -> list[str]:
        """Completions from history (newest first) then indexed tokens (A-Z)."""
        if not prefix:
            return []
        with self._lock:
            out: list[str] = []
            for q in self._history.matching_prefix(prefix):
                if q not in out:
                    out.append(q)
            for token in self._index.tokens_with_prefix(prefix.lower())[:MAX_SUGGESTIONS]:
                if token not in out:
                    out.append(token)
            return out[:MAX_SUGGESTIONS]
