from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from log_insight.core.models import LogLevel, LogRecord

T0 = datetime(2025, 12, 30, 8, 0, 0, tzinfo=UTC)


class FixedClock:
    """Callable clock the tests can move by hand."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def make_record() -> Callable[..., LogRecord]:
    def _make(
        message: str,
        level: LogLevel = LogLevel.INFO,
        *,
        ts: datetime = T0,
        **kwargs: Any,
    ) -> LogRecord:
        return LogRecord(message=message, level=level, timestamp=ts, **kwargs)

    return _make


@pytest.fixture
def write_jsonl() -> Callable[[Path, list[Any]], None]:
    def _write(path: Path, rows: list[Any]) -> None:
        lines = [row if isinstance(row, str) else json.dumps(row) for row in rows]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    return _write
