"""Text tokenization for the inverted index."""

from __future__ import annotations

import re
from collections.abc import Iterator

from .models import LogRecord

# Runs of unicode letters/digits; underscore counts as a separator.
_TOKEN_RE = re.compile(r"[^\W_]+")

MIN_TOKEN_LENGTH = 2


def tokenize(text: str) -> list[str]:
    """Split text into lowercase alphanumeric tokens of length >= 2."""
    return [t for t in _TOKEN_RE.findall(text.lower()) if len(t) >= MIN_TOKEN_LENGTH]


def record_tokens(record: LogRecord) -> Iterator[str]:
    """Yield the searchable tokens of a record (may repeat)."""
    yield from tokenize(record.message)
    for value in record.metadata.values():
        yield from tokenize(value)
    yield from tokenize(record.file_name)
    yield from tokenize(record.function)
