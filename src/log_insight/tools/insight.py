"""MCP tool implementations.

This module contains the *implementation* behind the exposed MCP tools.
Keep this layer thin: validate inputs, translate them into core calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from log_insight.core.aggregator import AggregatedEntry, Statistics
from log_insight.core.anomaly import Anomaly, AnomalySeverity
from log_insight.core.loader import load_records
from log_insight.core.models import LogLevel, LogRecord
from log_insight.core.patterns import extract_pattern, levenshtein, similarity
from log_insight.core.query import parse_query
from log_insight.core.saved import SavedSearch
from log_insight.core.schemas import RecordPayload
from log_insight.core.search import Facets, MatchedRecord, SearchOptions, SearchResult, SortField, SortOrder
from log_insight.core.time_window import TimeWindow, resolve_window
from log_insight.tools.session import LogInsightSession

DEFAULT_LIMIT = 50
HARD_LIMIT = 1000
ALL_LEVELS = [level.label for level in LogLevel]
ALLOWED_FILE_SUFFIXES = {".jsonl", ".ndjson", ".json", ".log"}
BASE_DIR_ENV = "LOG_INSIGHT_BASE_DIR"


# --------------------------------------------------------------------- inputs


def _parse_levels(levels: Sequence[str] | None) -> set[LogLevel] | None:
    """Parse user-supplied severity names into LogLevel enums."""
    if not levels:
        return None
    out: set[LogLevel] = set()
    for s in levels:
        if not s.strip():
            continue
        try:
            out.add(LogLevel.parse(s))
        except ValueError as e:
            valid = ", ".join(ALL_LEVELS)
            raise ValueError(
                f"Unknown log level '{s}'. Valid values: {valid}. "
                "Tip: levels is case-insensitive (e.g., 'error', 'WARNING')."
            ) from e
    return out or None


def _resolve_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")
    return min(limit, HARD_LIMIT)


def _parse_choice(value: str, enum_cls: type, label: str):
    try:
        return enum_cls(value.strip().lower())
    except ValueError as e:
        valid = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Unknown {label} '{value}'. Valid values: {valid}.") from e


def _resolve_window(
    session: LogInsightSession,
    *,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    year: str | None = None,
    hours_lookback: int | None = None,
    days_lookback: int | None = None,
    window: str | None = None,
) -> TimeWindow | None:
    return resolve_window(
        since=since,
        until=until,
        date_=date,
        hour=hour,
        week=week,
        month=month,
        year=year,
        hours_lookback=hours_lookback,
        days_lookback=days_lookback,
        preset=window,
        now=session.clock(),
    )


def base_dir() -> Path:
    """Return the resolved base directory for record files."""
    raw = os.getenv(BASE_DIR_ENV, os.getcwd())
    return Path(raw).resolve()


def _safe_resolve(path: str) -> Path:
    """Resolve a path under the configured base directory."""
    base = base_dir()
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = base / p
    p = p.resolve()
    if base not in p.parents and p != base:
        raise ValueError("Path escapes base dir")
    return p


def _ensure_allowed_suffix(path: Path) -> None:
    suffix = path.suffix.lower()
    if suffix == ".gz":
        suffix = path.with_suffix("").suffix.lower()
    if suffix not in ALLOWED_FILE_SUFFIXES:
        allowed = ", ".join(sorted(ALLOWED_FILE_SUFFIXES))
        raise ValueError(f"File type not allowed. Allowed: {allowed} (optionally .gz).")


# -------------------------------------------------------------------- outputs


def _record_to_dict(record: LogRecord) -> dict[str, Any]:
    """Convert a LogRecord into a JSON-serializable dict."""
    d: dict[str, Any] = {
        "id": record.id,
        "timestamp": record.timestamp.isoformat(),
        "level": record.level.label,
        "message": record.message,
    }
    if record.metadata:
        d["metadata"] = dict(record.metadata)
    if record.file:
        d["source"] = record.source_location
    if record.function:
        d["function"] = record.function
    return d


def _matched_to_dict(m: MatchedRecord) -> dict[str, Any]:
    d = _record_to_dict(m.record)
    d["score"] = round(m.score, 4)
    if m.highlighted_message is not None:
        d["highlighted"] = m.highlighted_message
    if m.matched_terms:
        d["matched_terms"] = list(m.matched_terms)
    return d


def _facets_to_dict(f: Facets) -> dict[str, Any]:
    return {
        "levels": {level.label: n for level, n in f.level_counts.items()},
        "sources": dict(f.source_counts),
        "hours": {str(h): n for h, n in sorted(f.hour_counts.items())},
        "metadata_keys": dict(f.metadata_counts),
    }


def _result_to_dict(result: SearchResult, *, include_facets: bool) -> dict[str, Any]:
    d: dict[str, Any] = {
        "query": result.query,
        "total_count": result.total_count,
        "count": len(result.records),
        "execution_ms": round(result.execution_time * 1000, 3),
        "records": [_matched_to_dict(m) for m in result.records],
    }
    if include_facets:
        d["facets"] = _facets_to_dict(result.facets)
    return d


def _saved_to_dict(s: SavedSearch) -> dict[str, Any]:
    return {
        "id": s.id,
        "name": s.name,
        "query": s.query,
        "created_at": s.created_at.isoformat(),
        "last_used_at": s.last_used_at.isoformat(),
        "usage_count": s.usage_count,
    }


def _anomaly_to_dict(a: Anomaly) -> dict[str, Any]:
    return {
        "id": a.id,
        "type": a.type.value,
        "severity": a.severity.value,
        "description": a.description,
        "detected_at": a.detected_at.isoformat(),
        "related_records": list(a.related_records),
        "baseline": a.baseline,
        "actual": a.actual,
        "deviation_pct": round(a.deviation, 2),
    }


def _stats_to_dict(s: Statistics) -> dict[str, Any]:
    return {
        "total_count": s.total_count,
        "count_by_level": {level.label: n for level, n in s.count_by_level.items()},
        "count_by_source": dict(s.count_by_source),
        "entries_per_minute": round(s.entries_per_minute, 4),
        "peak_entries_per_minute": s.peak_entries_per_minute,
        "top_patterns": [
            {"pattern": p.pattern, "count": p.count, "percentage": round(p.percentage, 2)} for p in s.top_patterns
        ],
        "error_rate": round(s.error_rate, 4),
        "window_seconds": s.window_duration.total_seconds(),
    }


def _aggregated_to_dict(e: AggregatedEntry) -> dict[str, Any]:
    return {
        "id": e.id,
        "pattern": e.pattern,
        "level": e.level.label,
        "count": e.count,
        "first_seen": e.first_seen.isoformat(),
        "last_seen": e.last_seen.isoformat(),
        "sources": sorted(e.sources),
        "metadata_keys": sorted(e.metadata_keys),
        "samples": [r.message for r in e.samples],
    }


# ---------------------------------------------------------------------- tools


def ingest_records_impl(session: LogInsightSession, *, records: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Validate JSON record payloads and feed them to both engines."""
    parsed: list[LogRecord] = []
    for i, raw in enumerate(records):
        try:
            parsed.append(RecordPayload.model_validate(raw).to_record())
        except ValidationError as e:
            raise ValueError(f"Invalid record at index {i}: {e.errors()[0]['msg']}") from e
    anomalies = session.ingest_many(parsed)
    return {
        "ingested": len(parsed),
        "indexed_total": session.search.indexed_count,
        "anomalies": [_anomaly_to_dict(a) for a in anomalies],
    }


async def load_records_file_impl(session: LogInsightSession, *, path: str) -> dict[str, Any]:
    """Read a JSON-lines record file (restricted to the base dir) into the session."""
    p = _safe_resolve(path)
    if not p.is_file():
        raise FileNotFoundError(f"File not found: {p}")
    _ensure_allowed_suffix(p)
    report = await load_records(p)
    anomalies = session.ingest_many(report.records)
    return {
        "loaded": report.loaded,
        "skipped": report.skipped,
        "indexed_total": session.search.indexed_count,
        "anomalies": [_anomaly_to_dict(a) for a in anomalies],
    }


def search_logs_impl(
    session: LogInsightSession,
    *,
    query: str = "",
    levels: Sequence[str] | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    hours_lookback: int | None = None,
    days_lookback: int | None = None,
    window: str | None = None,
    sources: Sequence[str] | None = None,
    functions: Sequence[str] | None = None,
    metadata: Mapping[str, str] | None = None,
    case_sensitive: bool = False,
    use_regex: bool = False,
    sort_by: str = "timestamp",
    sort_order: str = "descending",
    limit: int | None = None,
    offset: int = 0,
    highlight: bool = True,
    include_facets: bool = True,
) -> dict[str, Any]:
    """Implementation for the `search_logs` MCP tool.

    Notes
    -----
    - The time window is optional; without one every indexed record is eligible.
    - limit defaults to DEFAULT_LIMIT and is capped at HARD_LIMIT.
    """
    if offset < 0:
        raise ValueError("offset must be >= 0")
    tw = _resolve_window(
        session,
        since=since,
        until=until,
        date=date,
        hour=hour,
        week=week,
        month=month,
        hours_lookback=hours_lookback,
        days_lookback=days_lookback,
        window=window,
    )
    options = SearchOptions(
        levels=_parse_levels(levels),
        start=tw.start if tw else None,
        end=tw.end if tw else None,
        source_files=set(sources) if sources else None,
        functions=set(functions) if functions else None,
        metadata=dict(metadata) if metadata else None,
        case_sensitive=case_sensitive,
        use_regex=use_regex,
        sort_by=_parse_choice(sort_by, SortField, "sort field"),
        sort_order=_parse_choice(sort_order, SortOrder, "sort order"),
        limit=_resolve_limit(limit),
        offset=offset,
        highlight=highlight,
    )
    result = session.search.search(query, options)
    return _result_to_dict(result, include_facets=include_facets)


def parse_query_impl(*, query: str) -> dict[str, Any]:
    q = parse_query(query)
    return {
        "raw": q.raw,
        "terms": [
            {"text": t.text, "required": t.required, "excluded": t.excluded, "phrase": t.is_phrase} for t in q.terms
        ],
        "field_filters": [{"field": f.field, "op": f.op.value, "value": f.value} for f in q.field_filters],
    }


def save_search_impl(session: LogInsightSession, *, name: str, query: str) -> dict[str, Any]:
    if not name.strip():
        raise ValueError("name must not be empty")
    return _saved_to_dict(session.search.save_search(name.strip(), query))


def list_saved_searches_impl(session: LogInsightSession) -> dict[str, Any]:
    saved = session.search.saved_searches()
    return {"count": len(saved), "saved_searches": [_saved_to_dict(s) for s in saved]}


def delete_saved_search_impl(session: LogInsightSession, *, search_id: str) -> dict[str, Any]:
    return {"deleted": session.search.delete_saved_search(search_id)}


def run_saved_search_impl(
    session: LogInsightSession,
    *,
    search_id: str,
    limit: int | None = None,
    offset: int = 0,
) -> dict[str, Any]:
    if offset < 0:
        raise ValueError("offset must be >= 0")
    result = session.search.execute_saved_search(
        search_id, SearchOptions(limit=_resolve_limit(limit), offset=offset)
    )
    if result is None:
        raise ValueError(f"Unknown saved search id '{search_id}'.")
    return _result_to_dict(result, include_facets=True)


def recent_searches_impl(session: LogInsightSession, *, limit: int = 10) -> dict[str, Any]:
    if limit <= 0:
        raise ValueError("limit must be > 0")
    return {"queries": session.search.recent_searches(limit)}


def suggest_impl(session: LogInsightSession, *, prefix: str) -> dict[str, Any]:
    return {"prefix": prefix, "suggestions": session.search.suggestions(prefix)}


def log_statistics_impl(
    session: LogInsightSession,
    *,
    window: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    hours_lookback: int | None = None,
    days_lookback: int | None = None,
) -> dict[str, Any]:
    """Window statistics; defaults to the last hour."""
    tw = _resolve_window(
        session,
        since=since,
        until=until,
        date=date,
        hour=hour,
        week=week,
        month=month,
        hours_lookback=hours_lookback,
        days_lookback=days_lookback,
        window=window,
    )
    return _stats_to_dict(session.aggregator.statistics(tw))


def top_patterns_impl(
    session: LogInsightSession,
    *,
    limit: int = 10,
    window: str | None = None,
    include_entries: bool = False,
) -> dict[str, Any]:
    if limit <= 0:
        raise ValueError("limit must be > 0")
    tw = _resolve_window(session, window=window)
    if include_entries:
        entries = session.aggregator.aggregated_entries(tw)[:limit]
        return {"count": len(entries), "patterns": [_aggregated_to_dict(e) for e in entries]}
    top = session.aggregator.top_patterns(limit, tw)
    return {"count": len(top), "patterns": [{"pattern": p, "count": n} for p, n in top]}


def list_anomalies_impl(session: LogInsightSession, *, min_severity: str = "low") -> dict[str, Any]:
    anomalies = session.aggregator.anomalies(AnomalySeverity.parse(min_severity))
    return {"count": len(anomalies), "anomalies": [_anomaly_to_dict(a) for a in anomalies]}


def clear_anomalies_impl(session: LogInsightSession, *, anomaly_id: str | None = None) -> dict[str, Any]:
    if anomaly_id:
        return {"cleared": 1 if session.aggregator.clear_anomaly(anomaly_id) else 0}
    n = len(session.aggregator.anomalies())
    session.aggregator.clear_all_anomalies()
    return {"cleared": n}


def time_series_impl(
    session: LogInsightSession,
    *,
    window: str | None = None,
    granularity_seconds: int = 60,
    errors: bool = False,
) -> dict[str, Any]:
    if granularity_seconds <= 0:
        raise ValueError("granularity_seconds must be > 0")
    tw = _resolve_window(session, window=window)
    step = timedelta(seconds=granularity_seconds)
    if errors:
        points = session.aggregator.error_time_series(tw, step)
        return {
            "granularity_seconds": granularity_seconds,
            "points": [
                {"timestamp": p.timestamp.isoformat(), "errors": p.error_count, "total": p.total_count}
                for p in points
            ],
        }
    series = session.aggregator.time_series(tw, step)
    return {
        "granularity_seconds": granularity_seconds,
        "points": [{"timestamp": p.timestamp.isoformat(), "count": p.count} for p in series],
    }


def extract_pattern_impl(*, message: str) -> dict[str, Any]:
    return {"message": message, "pattern": extract_pattern(message)}


def pattern_similarity_impl(
    session: LogInsightSession | None = None,
    *,
    a: str,
    b: str | None = None,
    threshold: float | None = None,
) -> dict[str, Any]:
    """Compare two strings, or list known patterns similar to ``a`` when ``b`` is omitted."""
    if threshold is not None and not 0.0 <= threshold <= 1.0:
        raise ValueError("threshold must be within [0, 1]")
    if b is not None:
        return {"distance": levenshtein(a, b), "similarity": round(similarity(a, b), 4)}
    if session is None:
        raise ValueError("b is required when no session is available")
    hits = session.aggregator.similar_patterns(a, threshold)
    return {"matches": [{"pattern": p, "similarity": round(s, 4)} for p, s in hits]}
