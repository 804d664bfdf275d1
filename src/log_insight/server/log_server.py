"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: ingest records, search them, and query aggregates/anomalies
- Resources: help text, effective configuration and JSON schemas

The server owns a single in-memory :class:`LogInsightSession`; records are
lost when the process exits.

Run locally (stdio):
    python -m log_insight.server.log_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from log_insight.resources.registry import register_resources
from log_insight.tools.insight import (
    clear_anomalies_impl,
    delete_saved_search_impl,
    extract_pattern_impl,
    ingest_records_impl,
    list_anomalies_impl,
    list_saved_searches_impl,
    load_records_file_impl,
    log_statistics_impl,
    parse_query_impl,
    pattern_similarity_impl,
    recent_searches_impl,
    run_saved_search_impl,
    save_search_impl,
    search_logs_impl,
    suggest_impl,
    time_series_impl,
    top_patterns_impl,
)
from log_insight.tools.session import LogInsightSession

LOGGER = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; keeping logs concise makes them easier to consume.
    """
    level_name = os.getenv("LOG_INSIGHT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


mcp = FastMCP("log-insight", json_response=True)
session = LogInsightSession.from_env()

register_resources(mcp, session)


@mcp.tool()
def ingest_records(records: list[dict[str, Any]]) -> dict[str, Any]:
    """Index structured log records and run them through aggregation.

    Parameters
    ----------
    records:
        JSON objects with keys: message (required), level, timestamp (ISO-8601),
        metadata (string map), file, function, line, id.

    Returns
    -------
    dict:
        {"ingested": int, "indexed_total": int, "anomalies": list[dict]}
    """
    return ingest_records_impl(session, records=records)


@mcp.tool()
async def load_records_file(path: str) -> dict[str, Any]:
    """Load a JSON-lines record file (plain or .gz) from within LOG_INSIGHT_BASE_DIR."""
    return await load_records_file_impl(session, path=path)


@mcp.tool()
def search_logs(
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
    metadata: dict[str, str] | None = None,
    case_sensitive: bool = False,
    use_regex: bool = False,
    sort_by: str = "timestamp",
    sort_order: str = "descending",
    limit: int | None = None,
    offset: int = 0,
    highlight: bool = True,
    include_facets: bool = True,
) -> dict[str, Any]:
    """Full-text search over ingested records.

    Parameters
    ----------
    query:
        Words are optional, +word required, -word excluded, "quoted phrase",
        field:value filters (level, file/source, function/func, line, or any metadata key).
    levels:
        Severity names (e.g., ["error", "warning"]). Case-insensitive.
    since/until/date/hour/week/month/hours_lookback/days_lookback/window:
        Time window. week is YYYY-Www, month is YYYY-MM; window is a preset:
        5m, 15m, 1h, 6h, 24h, 7d.
    sources/functions/metadata:
        Exact filters on file basename, function name and metadata values.
    sort_by / sort_order:
        timestamp | level | message | relevance; ascending | descending.
    limit / offset:
        Pagination applied after sorting (limit hard-capped in the implementation).

    Returns
    -------
    dict:
        {"query", "total_count", "count", "execution_ms", "records", "facets"}
    """
    return search_logs_impl(
        session,
        query=query,
        levels=levels,
        since=since,
        until=until,
        date=date,
        hour=hour,
        week=week,
        month=month,
        hours_lookback=hours_lookback,
        days_lookback=days_lookback,
        window=window,
        sources=sources,
        functions=functions,
        metadata=metadata,
        case_sensitive=case_sensitive,
        use_regex=use_regex,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
        highlight=highlight,
        include_facets=include_facets,
    )


@mcp.tool()
def parse_query(query: str) -> dict[str, Any]:
    """Show how a query string is split into terms and field filters."""
    return parse_query_impl(query=query)


@mcp.tool()
def save_search(name: str, query: str) -> dict[str, Any]:
    """Save a named query for later reuse."""
    return save_search_impl(session, name=name, query=query)


@mcp.tool()
def run_saved_search(search_id: str, limit: int | None = None, offset: int = 0) -> dict[str, Any]:
    """Execute a saved search by id."""
    return run_saved_search_impl(session, search_id=search_id, limit=limit, offset=offset)


@mcp.tool()
def list_saved_searches() -> dict[str, Any]:
    """List saved searches with usage counts."""
    return list_saved_searches_impl(session)


@mcp.tool()
def delete_saved_search(search_id: str) -> dict[str, Any]:
    """Delete a saved search by id."""
    return delete_saved_search_impl(session, search_id=search_id)


@mcp.tool()
def recent_searches(limit: int = 10) -> dict[str, Any]:
    """Most recent distinct queries, newest first."""
    return recent_searches_impl(session, limit=limit)


@mcp.tool()
def suggest(prefix: str) -> dict[str, Any]:
    """Query completions from history and indexed tokens."""
    return suggest_impl(session, prefix=prefix)


@mcp.tool()
def log_statistics(
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
    """Volume, level, source and pattern statistics for a time window (default: last hour).

    Selectors: window preset (5m..7d), since/until (ISO-8601), date (YYYY-MM-DD),
    hour (YYYY-MM-DDTHH), week (YYYY-Www), month (YYYY-MM), hours_lookback or
    days_lookback.
    """
    return log_statistics_impl(
        session,
        window=window,
        since=since,
        until=until,
        date=date,
        hour=hour,
        week=week,
        month=month,
        hours_lookback=hours_lookback,
        days_lookback=days_lookback,
    )


@mcp.tool()
def top_patterns(limit: int = 10, window: str | None = None, include_entries: bool = False) -> dict[str, Any]:
    """Most frequent message patterns in a window."""
    return top_patterns_impl(session, limit=limit, window=window, include_entries=include_entries)


@mcp.tool()
def list_anomalies(min_severity: str = "low") -> dict[str, Any]:
    """Detected anomalies at or above a severity (low, medium, high, critical), newest first."""
    return list_anomalies_impl(session, min_severity=min_severity)


@mcp.tool()
def clear_anomalies(anomaly_id: str | None = None) -> dict[str, Any]:
    """Clear one anomaly by id, or all of them when no id is given."""
    return clear_anomalies_impl(session, anomaly_id=anomaly_id)


@mcp.tool()
def time_series(window: str | None = None, granularity_seconds: int = 60, errors: bool = False) -> dict[str, Any]:
    """Record counts per time bucket; with errors=true, error and total counts."""
    return time_series_impl(session, window=window, granularity_seconds=granularity_seconds, errors=errors)


@mcp.tool()
def extract_pattern(message: str) -> dict[str, Any]:
    """Normalize a message into the pattern used for grouping."""
    return extract_pattern_impl(message=message)


@mcp.tool()
def pattern_similarity(a: str, b: str | None = None, threshold: float | None = None) -> dict[str, Any]:
    """Edit-distance similarity of two strings, or known patterns similar to `a`."""
    return pattern_similarity_impl(session, a=a, b=b, threshold=threshold)


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
