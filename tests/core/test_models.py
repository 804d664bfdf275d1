from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from log_insight.core.models import LogLevel, LogRecord
from log_insight.core.schemas import RecordPayload


def test_level_ordering_and_labels() -> None:
    assert LogLevel.TRACE < LogLevel.DEBUG < LogLevel.INFO < LogLevel.WARNING < LogLevel.ERROR < LogLevel.CRITICAL
    assert LogLevel.ERROR >= LogLevel.ERROR
    assert LogLevel.WARNING.label == "warning"
    assert sorted([LogLevel.ERROR, LogLevel.DEBUG]) == [LogLevel.DEBUG, LogLevel.ERROR]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("warn", LogLevel.WARNING), (" Error ", LogLevel.ERROR), ("FATAL", LogLevel.CRITICAL), ("trace", LogLevel.TRACE)],
)
def test_level_parse_aliases(raw: str, expected: LogLevel) -> None:
    assert LogLevel.parse(raw) is expected


def test_level_parse_unknown() -> None:
    with pytest.raises(ValueError, match="Unknown log level 'loud'"):
        LogLevel.parse("loud")


def test_record_normalizes_timestamp_and_metadata() -> None:
    meta = {"attempt": 3}
    local = datetime(2025, 12, 30, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    r = LogRecord(message="m", timestamp=local, metadata=meta, file="/a/b/c.py", line=7)

    assert r.timestamp == datetime(2025, 12, 30, 8, 0, 0, tzinfo=UTC)
    assert r.timestamp.tzinfo is UTC
    assert r.metadata == {"attempt": "3"}
    meta["attempt"] = 4
    assert r.metadata == {"attempt": "3"}
    assert r.source_location == "c.py:7"


def test_records_get_unique_ids() -> None:
    assert LogRecord(message="a").id != LogRecord(message="a").id


def test_payload_round_trip_keeps_fields() -> None:
    payload = RecordPayload.model_validate(
        {"timestamp": "2025-12-30T08:00:00", "level": "Warning", "message": "slow", "line": 3}
    )
    record = payload.to_record()
    assert record.level is LogLevel.WARNING
    assert record.timestamp == datetime(2025, 12, 30, 8, 0, 0, tzinfo=UTC)
    assert RecordPayload.from_record(record).id == record.id


def test_payload_requires_message() -> None:
    with pytest.raises(ValueError):
        RecordPayload.model_validate({"level": "info"})
