"""Time-window parsing helpers.

Converts user-friendly time window selectors into UTC datetime ranges and
the inclusive :class:`TimeWindow` the engines query with.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import Enum

from .models import normalize_ts

_WEEK_RE = re.compile(r"^(?P<y>\d{4})-W(?P<w>\d{2})$")
_MONTH_RE = re.compile(r"^(?P<y>\d{4})-(?P<m>\d{2})$")
_YEAR_RE = re.compile(r"^(?P<y>\d{4})$")

# Calendar ranges are half-open; engines use closed windows.
_CLOSED_END = timedelta(microseconds=1)


class WindowPreset(str, Enum):
    LAST_5_MINUTES = "5m"
    LAST_15_MINUTES = "15m"
    LAST_HOUR = "1h"
    LAST_6_HOURS = "6h"
    LAST_24_HOURS = "24h"
    LAST_7_DAYS = "7d"

    @property
    def delta(self) -> timedelta:
        return _PRESET_DELTAS[self]

    @classmethod
    def parse(cls, value: str) -> WindowPreset:
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            valid = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown window preset '{value}'. Valid values: {valid}.") from e


_PRESET_DELTAS = {
    WindowPreset.LAST_5_MINUTES: timedelta(minutes=5),
    WindowPreset.LAST_15_MINUTES: timedelta(minutes=15),
    WindowPreset.LAST_HOUR: timedelta(hours=1),
    WindowPreset.LAST_6_HOURS: timedelta(hours=6),
    WindowPreset.LAST_24_HOURS: timedelta(hours=24),
    WindowPreset.LAST_7_DAYS: timedelta(days=7),
}


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Closed interval ``[start, end]`` in UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", normalize_ts(self.start))
        object.__setattr__(self, "end", normalize_ts(self.end))
        if self.start > self.end:
            raise ValueError("window start must be <= end")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end

    @classmethod
    def last(cls, delta: timedelta, *, now: datetime) -> TimeWindow:
        return cls(start=now - delta, end=now)

    @classmethod
    def from_preset(cls, preset: WindowPreset | str, *, now: datetime) -> TimeWindow:
        if not isinstance(preset, WindowPreset):
            preset = WindowPreset.parse(preset)
        return cls.last(preset.delta, now=now)


def parse_iso_dt(s: str) -> datetime:
    """Parse ISO8601 datetime. If tz is missing, assume UTC."""
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def range_for_date(s: str) -> tuple[datetime, datetime]:
    """Return the UTC day window for an ISO date string."""
    d = date.fromisoformat(s)
    start = datetime(d.year, d.month, d.day, tzinfo=UTC)
    end = start + timedelta(days=1)
    return start, end


def range_for_hour(s: str) -> tuple[datetime, datetime]:
    """Return the UTC hour window for a YYYY-MM-DDTHH selector."""
    base = datetime.fromisoformat(s)
    if base.tzinfo is None:
        base = base.replace(tzinfo=UTC)
    start = base.astimezone(UTC).replace(minute=0, second=0, microsecond=0)
    end = start + timedelta(hours=1)
    return start, end


def range_for_week(s: str) -> tuple[datetime, datetime]:
    """Return the UTC week window for a YYYY-Www selector."""
    m = _WEEK_RE.match(s)
    if not m:
        raise ValueError("week must look like YYYY-Www (e.g., 2025-W52)")
    y = int(m.group("y"))
    w = int(m.group("w"))
    start_date = date.fromisocalendar(y, w, 1)  # Monday
    start = datetime(start_date.year, start_date.month, start_date.day, tzinfo=UTC)
    end = start + timedelta(days=7)
    return start, end


def range_for_month(s: str) -> tuple[datetime, datetime]:
    """Return the UTC month window for a YYYY-MM selector."""
    m = _MONTH_RE.match(s)
    if not m:
        raise ValueError("month must look like YYYY-MM (e.g., 2025-12)")
    y = int(m.group("y"))
    mo = int(m.group("m"))
    start = datetime(y, mo, 1, tzinfo=UTC)
    if mo == 12:
        end = datetime(y + 1, 1, 1, tzinfo=UTC)
    else:
        end = datetime(y, mo + 1, 1, tzinfo=UTC)
    return start, end


def range_for_year(s: str) -> tuple[datetime, datetime]:
    """Return the UTC year window for a YYYY selector."""
    m = _YEAR_RE.match(s)
    if not m:
        raise ValueError("year must look like YYYY (e.g., 2025)")
    y = int(m.group("y"))
    return datetime(y, 1, 1, tzinfo=UTC), datetime(y + 1, 1, 1, tzinfo=UTC)


def _calendar_range(
    *,
    date_: str | None,
    hour: str | None,
    week: str | None,
    month: str | None,
    year: str | None,
) -> tuple[datetime, datetime] | None:
    if date_:
        return range_for_date(date_)
    if hour:
        return range_for_hour(hour)
    if week:
        return range_for_week(week)
    if month:
        return range_for_month(month)
    if year:
        return range_for_year(year)
    return None


def resolve_time_window(
    *,
    since: str | None = None,
    until: str | None = None,
    date_: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    year: str | None = None,
    days_lookback: int | None = None,
    hours_lookback: int | None = None,
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Resolve a UTC time window using selectors over explicit bounds.

    Precedence: calendar selectors, then lookbacks, then since/until.
    """
    if days_lookback is not None and hours_lookback is not None:
        raise ValueError("Use either days_lookback or hours_lookback, not both.")

    calendar = _calendar_range(date_=date_, hour=hour, week=week, month=month, year=year)
    if calendar is not None:
        return calendar

    if days_lookback is not None or hours_lookback is not None:
        if (days_lookback or 0) < 0 or (hours_lookback or 0) < 0:
            raise ValueError("lookback must be >= 0")
        now = normalize_ts(now) if now is not None else datetime.now(UTC)
        delta = timedelta(days=days_lookback) if days_lookback is not None else timedelta(hours=hours_lookback or 0)
        return now - delta, now

    s = parse_iso_dt(since) if since else None
    u = parse_iso_dt(until) if until else None
    return s, u


def resolve_window(
    *,
    since: str | None = None,
    until: str | None = None,
    date_: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    year: str | None = None,
    days_lookback: int | None = None,
    hours_lookback: int | None = None,
    preset: str | None = None,
    now: datetime,
) -> TimeWindow | None:
    """Resolve selectors into a closed :class:`TimeWindow`.

    Returns None when nothing was selected so callers can apply their own
    default. A named ``preset`` is used only when no other selector is set.
    An open-ended ``since``/``until`` is closed with the epoch or ``now``.
    """
    calendar = _calendar_range(date_=date_, hour=hour, week=week, month=month, year=year)
    if calendar is not None:
        return TimeWindow(start=calendar[0], end=calendar[1] - _CLOSED_END)

    start, end = resolve_time_window(
        since=since,
        until=until,
        days_lookback=days_lookback,
        hours_lookback=hours_lookback,
        now=now,
    )
    if start is None and end is None:
        if preset:
            return TimeWindow.from_preset(preset, now=now)
        return None
    return TimeWindow(
        start=start if start is not None else datetime.fromtimestamp(0, UTC),
        end=end if end is not None else now,
    )
