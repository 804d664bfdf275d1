"""Anomaly events and their bounded, de-duplicated store."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

logger = logging.getLogger(__name__)


class AnomalyType(str, Enum):
    VOLUME_SPIKE = "volume_spike"
    VOLUME_DROP = "volume_drop"
    ERROR_SPIKE = "error_spike"
    NEW_PATTERN = "new_pattern"
    PATTERN_DISAPPEARANCE = "pattern_disappearance"
    LATENCY_INCREASE = "latency_increase"
    UNUSUAL_SOURCE = "unusual_source"


class AnomalySeverity(str, Enum):
    """Ordered severities: LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: str) -> AnomalySeverity:
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            valid = ", ".join(s.value for s in _SEVERITY_ORDER)
            raise ValueError(f"Unknown severity '{value}'. Valid values: {valid}.") from e

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, AnomalySeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, AnomalySeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, AnomalySeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, AnomalySeverity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER: tuple[AnomalySeverity, ...] = (
    AnomalySeverity.LOW,
    AnomalySeverity.MEDIUM,
    AnomalySeverity.HIGH,
    AnomalySeverity.CRITICAL,
)


@dataclass(frozen=True, slots=True)
class Anomaly:
    """A detected deviation from the baseline."""

    type: AnomalyType
    severity: AnomalySeverity
    description: str
    detected_at: datetime
    related_records: tuple[str, ...] = ()
    baseline: float = 0.0
    actual: float = 0.0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def deviation(self) -> float:
        """Percent change of ``actual`` over ``baseline`` (0 without a baseline)."""
        if self.baseline <= 0:
            return 0.0
        return (self.actual - self.baseline) / self.baseline * 100


class AnomalyLog:
    """Stored anomalies; same-type events inside ``dedupe_window`` are dropped."""

    def __init__(self, *, dedupe_window: timedelta, retention: timedelta) -> None:
        self.dedupe_window = dedupe_window
        self.retention = retention
        self._items: list[Anomaly] = []

    def __len__(self) -> int:
        return len(self._items)

    def add(self, anomaly: Anomaly, *, now: datetime) -> bool:
        """Store an anomaly unless it duplicates a recent one; returns True when stored."""
        for existing in self._items:
            if existing.type is anomaly.type and now - existing.detected_at < self.dedupe_window:
                logger.debug("Suppressed duplicate %s anomaly", anomaly.type.value)
                return False

        self._items.append(anomaly)
        cutoff = now - self.retention
        self._items = [a for a in self._items if a.detected_at >= cutoff]
        logger.info(
            "Anomaly detected: %s (%s) %s",
            anomaly.type.value,
            anomaly.severity.value,
            anomaly.description,
        )
        return True

    def select(self, min_severity: AnomalySeverity = AnomalySeverity.LOW) -> list[Anomaly]:
        """Anomalies at or above ``min_severity``, newest first."""
        hits = [a for a in self._items if a.severity >= min_severity]
        return sorted(hits, key=lambda a: a.detected_at, reverse=True)

    def remove(self, anomaly_id: str) -> bool:
        before = len(self._items)
        self._items = [a for a in self._items if a.id != anomaly_id]
        return len(self._items) != before

    def clear(self) -> None:
        self._items.clear()
