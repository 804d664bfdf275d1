"""Query language: parsing and building search query strings.

Grammar (whitespace separated)::

    word        optional term
    +word       required term
    -word       excluded term
    "a phrase"  phrase term
    field:value / field:"a value"   equality field filter
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .models import LogLevel

_FIELD_RE = re.compile(r"""(\w+):(?:"([^"]+)"|'([^']+)'|([^"'\s]+))""")
_PHRASE_RE = re.compile(r'"([^"]+)"')


class FilterOperator(str, Enum):
    """Comparison operators for field filters (ordering is lexicographic)."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"
    GREATER_OR_EQUAL = "ge"
    LESS_OR_EQUAL = "le"

    def compare(self, actual: str, expected: str) -> bool:
        """Apply the operator as ``actual <op> expected``."""
        if self is FilterOperator.EQUALS:
            return actual == expected
        if self is FilterOperator.NOT_EQUALS:
            return actual != expected
        if self is FilterOperator.CONTAINS:
            return expected in actual
        if self is FilterOperator.GREATER_THAN:
            return actual > expected
        if self is FilterOperator.LESS_THAN:
            return actual < expected
        if self is FilterOperator.GREATER_OR_EQUAL:
            return actual >= expected
        return actual <= expected


@dataclass(frozen=True, slots=True)
class Term:
    """A free-text search term."""

    text: str
    required: bool = False
    excluded: bool = False
    is_phrase: bool = False


@dataclass(frozen=True, slots=True)
class FieldFilter:
    """A ``field <op> value`` constraint."""

    field: str
    value: str
    op: FilterOperator = FilterOperator.EQUALS


@dataclass(frozen=True, slots=True)
class Query:
    """Parsed query; immutable once built."""

    raw: str
    terms: tuple[Term, ...] = ()
    field_filters: tuple[FieldFilter, ...] = ()

    @property
    def scored_terms(self) -> tuple[Term, ...]:
        """Terms that contribute to the score (everything but exclusions)."""
        return tuple(t for t in self.terms if not t.excluded)


def parse_query(raw: str) -> Query:
    """Parse a raw query string.

    Field filters are extracted first, then quoted phrases, then the
    remaining words. Each step removes what it matched before the next runs.
    """
    field_filters: list[FieldFilter] = []
    terms: list[Term] = []

    def _take_filter(m: re.Match[str]) -> str:
        value = next(g for g in m.group(2, 3, 4) if g is not None)
        field_filters.append(FieldFilter(field=m.group(1), value=value))
        return " "

    def _take_phrase(m: re.Match[str]) -> str:
        terms.append(Term(text=m.group(1), is_phrase=True))
        return " "

    remaining = _FIELD_RE.sub(_take_filter, raw)
    remaining = _PHRASE_RE.sub(_take_phrase, remaining)

    for word in remaining.split():
        required = excluded = False
        if word.startswith("+"):
            required = True
            word = word[1:]
        elif word.startswith("-"):
            excluded = True
            word = word[1:]
        if not word:
            continue
        terms.append(Term(text=word, required=required, excluded=excluded))

    return Query(raw=raw, terms=tuple(terms), field_filters=tuple(field_filters))


class QueryBuilder:
    """Fluent builder producing query strings in the grammar above.

    >>> QueryBuilder().required("error").exclude("debug").level(LogLevel.ERROR).build()
    '+error -debug level:error'
    """

    def __init__(self) -> None:
        self._terms: list[str] = []
        self._required: list[str] = []
        self._excluded: list[str] = []
        self._phrases: list[str] = []
        self._fields: list[tuple[str, str]] = []

    def term(self, text: str) -> QueryBuilder:
        self._terms.append(text)
        return self

    def required(self, text: str) -> QueryBuilder:
        self._required.append(text)
        return self

    def exclude(self, text: str) -> QueryBuilder:
        self._excluded.append(text)
        return self

    def phrase(self, text: str) -> QueryBuilder:
        self._phrases.append(text)
        return self

    def field(self, name: str, value: str) -> QueryBuilder:
        self._fields.append((name, value))
        return self

    def level(self, level: LogLevel) -> QueryBuilder:
        return self.field("level", level.label)

    def build(self) -> str:
        parts = [f"+{t}" for t in self._required]
        parts += [f"-{t}" for t in self._excluded]
        parts += [f'"{p}"' for p in self._phrases]
        parts += self._terms
        for name, value in self._fields:
            parts.append(f'{name}:"{value}"' if " " in value else f"{name}:{value}")
        return " ".join(parts)
