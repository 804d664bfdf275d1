from __future__ import annotations

import gzip
import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from log_insight.core.loader import iter_records, load_records, parse_record_line
from log_insight.core.models import LogLevel


ROWS = [
    {"timestamp": "2025-12-30T08:12:01Z", "level": "info", "message": "service started"},
    {"timestamp": "2025-12-30T08:12:04Z", "level": "ERROR", "message": "upstream timeout", "file": "api.py"},
    "not json at all",
    "",
    {"level": "bogus", "message": "bad level"},
    {"id": "fixed", "level": "warn", "message": "retrying", "metadata": {"attempt": 2}},
]


@pytest.mark.asyncio
async def test_load_records_skips_malformed_lines(tmp_path: Path, write_jsonl) -> None:
    path = tmp_path / "records.jsonl"
    write_jsonl(path, ROWS)

    report = await load_records(path)

    assert report.loaded == 3
    assert report.skipped == 2
    first, second, third = report.records
    assert first.timestamp == datetime(2025, 12, 30, 8, 12, 1, tzinfo=UTC)
    assert second.level is LogLevel.ERROR
    assert second.file_name == "api.py"
    assert third.id == "fixed"
    assert third.level is LogLevel.WARNING
    assert third.metadata == {"attempt": "2"}


@pytest.mark.asyncio
async def test_iter_records_reads_gzip(tmp_path: Path) -> None:
    path = tmp_path / "records.jsonl.gz"
    with gzip.open(path, "wt", encoding="utf-8") as f:
        f.write(json.dumps({"level": "critical", "message": "disk gone"}) + "\n")

    records = [r async for r in iter_records(path)]
    assert [(r.level, r.message) for r in records] == [(LogLevel.CRITICAL, "disk gone")]


@pytest.mark.asyncio
async def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        await load_records(tmp_path / "nope.jsonl")


def test_parse_record_line_rejects_non_objects() -> None:
    assert parse_record_line("[1, 2]") is None
    assert parse_record_line("{}") is None
    assert parse_record_line('{"message": "ok"}').message == "ok"
