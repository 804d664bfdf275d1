"""Core data models shared by the search and aggregation engines."""

from __future__ import annotations

import os
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

_LEVEL_ALIASES = {
    "WARN": "WARNING",
    "ERR": "ERROR",
    "FATAL": "CRITICAL",
    "CRIT": "CRITICAL",
    "SEVERE": "CRITICAL",
}


class LogLevel(str, Enum):
    """Severity levels, ordered from TRACE (lowest) to CRITICAL (highest)."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    @property
    def label(self) -> str:
        """Lowercase display name (e.g. ``"warning"``)."""
        return self.name.lower()

    @classmethod
    def parse(cls, value: str) -> LogLevel:
        """Parse a case-insensitive level name or common alias."""
        name = value.strip().upper()
        name = _LEVEL_ALIASES.get(name, name)
        try:
            return cls[name]
        except KeyError as e:
            valid = ", ".join(level.label for level in _LEVEL_ORDER)
            raise ValueError(f"Unknown log level '{value}'. Valid values: {valid}.") from e

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_ORDER: tuple[LogLevel, ...] = (
    LogLevel.TRACE,
    LogLevel.DEBUG,
    LogLevel.INFO,
    LogLevel.WARNING,
    LogLevel.ERROR,
    LogLevel.CRITICAL,
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_ts(ts: datetime) -> datetime:
    """Return a timezone-aware UTC timestamp (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


@dataclass(frozen=True, slots=True)
class LogRecord:
    """Immutable structured log event fed to the engines."""

    message: str
    level: LogLevel = LogLevel.INFO
    timestamp: datetime = field(default_factory=_utcnow)
    metadata: Mapping[str, str] = field(default_factory=dict)
    file: str = ""
    function: str = ""
    line: int = 0
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", normalize_ts(self.timestamp))
        # Copy so later mutation of the caller's dict cannot leak in.
        meta = {str(k): str(v) for k, v in (self.metadata or {}).items()}
        object.__setattr__(self, "metadata", meta)

    @property
    def file_name(self) -> str:
        """Basename of the source file."""
        return os.path.basename(self.file)

    @property
    def source_location(self) -> str:
        return f"{self.file_name}:{self.line}"
