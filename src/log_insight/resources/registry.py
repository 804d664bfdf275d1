"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from log_insight.core.schemas import RecordPayload
from log_insight.core.time_window import WindowPreset
from log_insight.tools.insight import ALLOWED_FILE_SUFFIXES, BASE_DIR_ENV, base_dir
from log_insight.tools.session import LogInsightSession

QUERY_SYNTAX = """\
Query syntax (whitespace separated, all parts optional):

  word            optional term; records matching more terms score higher
  +word           required term; records without it are dropped
  -word           excluded term; records containing it are dropped
  "two words"     phrase term
  field:value     equality filter; field:"a value" for values with spaces

Fields: level, file (or source), function (or func), line; any other field
name is looked up in the record metadata.

Example:
  +timeout -healthcheck "connection reset" level:error region:eu-west-1
"""


def register_resources(mcp: FastMCP, session: LogInsightSession) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://log-insight/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        allowed = ", ".join(sorted(ALLOWED_FILE_SUFFIXES))
        presets = ", ".join(p.value for p in WindowPreset)
        return (
            "Resources:\n"
            "- app://log-insight/help\n"
            "- app://log-insight/config\n"
            "- app://log-insight/query-syntax\n"
            "- app://log-insight/schemas/record\n"
            f"\nRecord files for load_records_file are restricted to {BASE_DIR_ENV} "
            f"({base_dir()}); allowed: {allowed}, .gz\n"
            f"Window presets: {presets}\n"
        )

    @mcp.resource("app://log-insight/config")
    def config_resource() -> dict[str, Any]:
        """Return the effective engine configuration and current sizes."""
        search_cfg = session.search.config
        agg_cfg = session.aggregator.config
        return {
            "search": {
                "max_records": search_cfg.max_records,
                "max_history_items": search_cfg.max_history_items,
                "indexed_records": session.search.indexed_count,
                "indexed_tokens": session.search.token_count,
            },
            "aggregator": {
                "max_patterns": agg_cfg.max_patterns,
                "max_entries": agg_cfg.max_entries,
                "similarity_threshold": agg_cfg.similarity_threshold,
                "pattern_detection": agg_cfg.enable_pattern_detection,
                "anomaly_detection": agg_cfg.enable_anomaly_detection,
                "baseline_window_seconds": agg_cfg.baseline_window.total_seconds(),
                "anomaly_threshold": agg_cfg.anomaly_threshold,
                "processed_records": session.aggregator.processed_count,
                "patterns": session.aggregator.pattern_count,
            },
        }

    @mcp.resource("app://log-insight/query-syntax")
    def query_syntax() -> str:
        """Return the search query grammar."""
        return QUERY_SYNTAX

    @mcp.resource("app://log-insight/schemas/record")
    def record_schema() -> dict[str, Any]:
        """Return the JSON schema for ingested records."""
        return RecordPayload.model_json_schema()
