"""Validated JSON payloads for records entering the engines."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .models import LogLevel, LogRecord, _utcnow


class RecordPayload(BaseModel):
    """One structured log record as produced by a JSON log formatter.

    Example::

        {"timestamp": "2026-01-15T10:30:00Z", "level": "info", "message": "Hello"}
    """

    id: str | None = Field(default=None, description="Stable unique id; generated when omitted.")
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="ISO-8601 timestamp. UTC is assumed when the offset is missing.",
    )
    level: LogLevel = Field(default=LogLevel.INFO, description="Severity name (case-insensitive).")
    message: str = Field(description="Log message text.")
    metadata: dict[str, str] = Field(default_factory=dict, description="Flat string key/value context.")
    file: str = Field(default="", description="Source file path or name.")
    function: str = Field(default="", description="Function that emitted the record.")
    line: int = Field(default=0, ge=0, description="Source line number.")

    @field_validator("level", mode="before")
    @classmethod
    def _parse_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return LogLevel.parse(v)
        return v

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify_metadata(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v

    def to_record(self) -> LogRecord:
        kwargs: dict[str, Any] = {}
        if self.id:
            kwargs["id"] = self.id
        return LogRecord(
            message=self.message,
            level=self.level,
            timestamp=self.timestamp,
            metadata=self.metadata,
            file=self.file,
            function=self.function,
            line=self.line,
            **kwargs,
        )

    @classmethod
    def from_record(cls, record: LogRecord) -> RecordPayload:
        return cls(
            id=record.id,
            timestamp=record.timestamp,
            level=record.level,
            message=record.message,
            metadata=dict(record.metadata),
            file=record.file,
            function=record.function,
            line=record.line,
        )
