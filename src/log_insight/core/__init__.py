"""Search and aggregation engines.

Both engines consume the same :class:`LogRecord` stream and share no state.
"""

from __future__ import annotations

from .aggregator import AggregatedEntry, Aggregator, PatternStat, Statistics
from .anomaly import Anomaly, AnomalySeverity, AnomalyType
from .config import AggregatorConfig, SearchConfig, resolve_aggregator_config, resolve_search_config
from .models import LogLevel, LogRecord
from .patterns import PatternRule, extract_pattern, levenshtein, similarity
from .query import FieldFilter, FilterOperator, Query, QueryBuilder, Term, parse_query
from .saved import SavedSearch, SearchHistoryItem
from .search import Facets, MatchedRecord, SearchEngine, SearchOptions, SearchResult, SortField, SortOrder
from .time_window import TimeWindow, WindowPreset
from .tokenizer import tokenize

__all__ = [
    "AggregatedEntry",
    "Aggregator",
    "AggregatorConfig",
    "Anomaly",
    "AnomalySeverity",
    "AnomalyType",
    "Facets",
    "FieldFilter",
    "FilterOperator",
    "LogLevel",
    "LogRecord",
    "MatchedRecord",
    "PatternRule",
    "PatternStat",
    "Query",
    "QueryBuilder",
    "SavedSearch",
    "SearchConfig",
    "SearchEngine",
    "SearchHistoryItem",
    "SearchOptions",
    "SearchResult",
    "SortField",
    "SortOrder",
    "Statistics",
    "Term",
    "TimeWindow",
    "WindowPreset",
    "extract_pattern",
    "levenshtein",
    "parse_query",
    "resolve_aggregator_config",
    "resolve_search_config",
    "similarity",
    "tokenize",
]
