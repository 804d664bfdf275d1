"""Command-line access to the engines over a JSON-lines record file.

Records are replayed in timestamp order with the engine clock following the
record timestamps, so volume and error spikes are detected as they would
have been live.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from log_insight.core.anomaly import AnomalySeverity
from log_insight.core.loader import load_records
from log_insight.core.models import LogLevel, LogRecord
from log_insight.core.search import SearchOptions, SortField, SortOrder
from log_insight.core.time_window import TimeWindow, resolve_window
from log_insight.tools.session import LogInsightSession


class _ReplayClock:
    def __init__(self) -> None:
        self.now = datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now


def _parse_levels(s: str) -> list[LogLevel]:
    out: list[LogLevel] = []
    for part in s.split(","):
        if not part.strip():
            continue
        try:
            out.append(LogLevel.parse(part))
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e)) from e
    if not out:
        raise argparse.ArgumentTypeError("At least one level must be provided")
    return out


def _replay(path: Path) -> tuple[LogInsightSession, list[LogRecord], int]:
    report = asyncio.run(load_records(path))
    records = sorted(report.records, key=lambda r: r.timestamp)
    clock = _ReplayClock()
    session = LogInsightSession.from_env(clock=clock)
    for record in records:
        clock.now = record.timestamp
        session.ingest(record)
    return session, records, report.skipped


def _window(args: argparse.Namespace, records: list[LogRecord]) -> TimeWindow | None:
    now = records[-1].timestamp if records else datetime.now(UTC)
    tw = resolve_window(
        since=args.since,
        until=args.until,
        date_=args.date,
        hour=args.hour,
        preset=args.window,
        now=now,
    )
    if tw is None and records:
        # Whole file by default.
        tw = TimeWindow(start=records[0].timestamp, end=records[-1].timestamp)
    return tw


def _cmd_search(args: argparse.Namespace, session: LogInsightSession, tw: TimeWindow | None) -> None:
    options = SearchOptions(
        levels=args.levels,
        start=tw.start if tw else None,
        end=tw.end if tw else None,
        case_sensitive=args.case_sensitive,
        use_regex=args.regex,
        sort_by=SortField(args.sort_by),
        sort_order=SortOrder.ASCENDING if args.ascending else SortOrder.DESCENDING,
        limit=args.max_results,
        highlight=not args.no_highlight,
    )
    result = session.search.search(args.query, options)
    for m in result.records:
        r = m.record
        text = m.highlighted_message or r.message
        print(f"{r.timestamp.isoformat()} [{r.level.value}] {text} (score={m.score:.2f})")
    print(f"\nFound {result.total_count} matching records ({len(result.records)} shown).")


def _cmd_stats(args: argparse.Namespace, session: LogInsightSession, tw: TimeWindow | None) -> None:
    stats = session.aggregator.statistics(tw)
    print(f"Total: {stats.total_count}")
    for level in LogLevel:
        n = stats.count_by_level.get(level, 0)
        if n:
            print(f"  {level.label:<8} {n}")
    print(f"Per minute: {stats.entries_per_minute:.2f} avg, {stats.peak_entries_per_minute} peak")
    print(f"Error rate: {stats.error_rate:.2%}")
    if stats.count_by_source:
        print("Sources:")
        for source, n in sorted(stats.count_by_source.items(), key=lambda kv: kv[1], reverse=True):
            print(f"  {source or '-'} {n}")


def _cmd_patterns(args: argparse.Namespace, session: LogInsightSession, tw: TimeWindow | None) -> None:
    for pattern, count in session.aggregator.top_patterns(args.top, tw):
        print(f"{count:>8}  {pattern}")


def _cmd_anomalies(args: argparse.Namespace, session: LogInsightSession, tw: TimeWindow | None) -> None:
    anomalies = session.aggregator.anomalies(args.min_severity)
    for a in anomalies:
        print(f"{a.detected_at.isoformat()} [{a.severity.value}] {a.type.value}: {a.description}")
    print(f"\nFound {len(anomalies)} anomalies.")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Search, aggregate and scan JSON-lines log records.")
    sub = p.add_subparsers(dest="command", required=True)

    def _common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("records_path", help="JSON-lines record file (plain or .gz)")
        sp.add_argument("--since", default=None, help="ISO8601 start time (assumes UTC if tz missing)")
        sp.add_argument("--until", default=None, help="ISO8601 end time (assumes UTC if tz missing)")
        sp.add_argument("--date", default=None, help="YYYY-MM-DD (UTC day)")
        sp.add_argument("--hour", default=None, help="YYYY-MM-DDTHH (UTC hour)")
        sp.add_argument("--window", default=None, help="Preset ending at the last record: 5m, 15m, 1h, 6h, 24h, 7d")

    s = sub.add_parser("search", help="Full-text search")
    _common(s)
    s.add_argument("query", nargs="?", default="")
    s.add_argument("--levels", type=_parse_levels, default=None, help="Comma-separated (e.g., ERROR,WARNING)")
    s.add_argument("--max", dest="max_results", type=int, default=50, help="Max results to print (default: 50)")
    s.add_argument("--sort-by", choices=[f.value for f in SortField], default=SortField.TIMESTAMP.value)
    s.add_argument("--ascending", action="store_true", help="Sort ascending (default: descending)")
    s.add_argument("--case-sensitive", action="store_true")
    s.add_argument("--regex", action="store_true", help="Treat terms as regular expressions")
    s.add_argument("--no-highlight", action="store_true")
    s.set_defaults(handler=_cmd_search)

    st = sub.add_parser("stats", help="Window statistics")
    _common(st)
    st.set_defaults(handler=_cmd_stats)

    pt = sub.add_parser("patterns", help="Most frequent message patterns")
    _common(pt)
    pt.add_argument("--top", type=int, default=10)
    pt.set_defaults(handler=_cmd_patterns)

    an = sub.add_parser("anomalies", help="Anomalies detected while replaying the file")
    _common(an)
    an.add_argument(
        "--min-severity",
        type=AnomalySeverity.parse,
        default=AnomalySeverity.LOW,
        help="low, medium, high or critical (default: low)",
    )
    an.set_defaults(handler=_cmd_anomalies)
    return p


def main(argv: Sequence[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    path = Path(args.records_path)

    try:
        if getattr(args, "max_results", 1) <= 0:
            raise ValueError("--max must be > 0")
        session, records, skipped = _replay(path)
        tw = _window(args, records)
        args.handler(args, session, tw)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)

    if skipped:
        print(f"({skipped} malformed line(s) skipped)", file=sys.stderr)


if __name__ == "__main__":
    main()
