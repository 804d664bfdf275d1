"""Saved searches and recency-ordered query history."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class SavedSearch:
    """A named query; usage fields change each time it is executed."""

    name: str
    query: str
    created_at: datetime
    last_used_at: datetime
    usage_count: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def mark_used(self, now: datetime) -> None:
        self.usage_count += 1
        self.last_used_at = now


@dataclass(frozen=True, slots=True)
class SearchHistoryItem:
    query: str
    timestamp: datetime
    result_count: int


class SearchHistory:
    """Most-recent-first, deduplicated query history capped at ``max_items``."""

    def __init__(self, max_items: int = 100) -> None:
        self.max_items = max_items
        self._items: list[SearchHistoryItem] = []

    def __len__(self) -> int:
        return len(self._items)

    def record(self, query: str, *, result_count: int, now: datetime) -> None:
        """Push a query to the front; empty queries are ignored."""
        if not query:
            return
        self._items = [i for i in self._items if i.query != query]
        self._items.insert(0, SearchHistoryItem(query=query, timestamp=now, result_count=result_count))
        del self._items[self.max_items :]

    def items(self) -> list[SearchHistoryItem]:
        return list(self._items)

    def recent(self, limit: int = 10) -> list[str]:
        return [i.query for i in self._items[: max(0, limit)]]

    def matching_prefix(self, prefix: str) -> list[str]:
        """History queries starting with ``prefix`` (case-insensitive), newest first."""
        p = prefix.lower()
        return [i.query for i in self._items if i.query.lower().startswith(p)]

    def clear(self) -> None:
        self._items.clear()
