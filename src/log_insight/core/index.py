"""Bounded record store and append-only inverted index.

Postings are never removed: when the store drops its oldest records their ids
stay in the index. Lookups still resolve through the store, so stale ids are
simply skipped, but index memory grows with the number of distinct tokens.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator

from .models import LogRecord
from .tokenizer import record_tokens


class RecordStore:
    """Insertion-ordered record store; oldest records drop past max_records."""

    def __init__(self, max_records: int) -> None:
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self.max_records = max_records
        self._records: deque[LogRecord] = deque()
        self._by_id: dict[str, LogRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[LogRecord]:
        return iter(self._records)

    def append(self, record: LogRecord) -> list[LogRecord]:
        """Store a record and return any records dropped to respect the cap."""
        self._records.append(record)
        self._by_id[record.id] = record
        dropped: list[LogRecord] = []
        while len(self._records) > self.max_records:
            old = self._records.popleft()
            # A re-used id may point at a newer record; keep that one.
            if self._by_id.get(old.id) is old:
                del self._by_id[old.id]
            dropped.append(old)
        return dropped

    def get(self, record_id: str) -> LogRecord | None:
        return self._by_id.get(record_id)

    def select(self, ids: set[str]) -> list[LogRecord]:
        """Return stored records whose id is in ``ids``, in insertion order."""
        return [r for r in self._records if r.id in ids]

    def clear(self) -> None:
        self._records.clear()
        self._by_id.clear()


class InvertedIndex:
    """Token -> record-id postings."""

    def __init__(self) -> None:
        self._postings: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._postings)

    def __contains__(self, token: object) -> bool:
        return token in self._postings

    def add(self, record: LogRecord) -> None:
        """Index every token of a record under its id."""
        for token in record_tokens(record):
            posting = self._postings.get(token)
            if posting is None:
                posting = set()
                self._postings[token] = posting
            posting.add(record.id)

    def lookup(self, token: str) -> set[str] | None:
        """Return the posting set for a token, or None when never indexed."""
        return self._postings.get(token)

    def lookup_containing(self, fragment: str) -> set[str]:
        """Union of the postings of every token that contains ``fragment``."""
        ids: set[str] = set()
        for token, posting in self._postings.items():
            if fragment in token:
                ids |= posting
        return ids

    def tokens_with_prefix(self, prefix: str) -> list[str]:
        """Indexed tokens starting with ``prefix``, sorted alphabetically."""
        return sorted(t for t in self._postings if t.startswith(prefix))

    def tokens(self) -> Iterable[str]:
        return self._postings.keys()

    def clear(self) -> None:
        self._postings.clear()
