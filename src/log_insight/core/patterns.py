"""Message normalization into patterns, and string similarity."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PatternRule:
    """Replace every match of ``regex`` with ``placeholder``."""

    name: str
    regex: re.Pattern[str]
    placeholder: str

    def apply(self, text: str) -> str:
        return self.regex.sub(self.placeholder, text)


# Applied in this order. The integer rule runs before the IPv4 and timestamp
# rules, so those two never see their digits.
DEFAULT_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        "uuid",
        re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"),
        "<UUID>",
    ),
    PatternRule("number", re.compile(r"\b\d+\b"), "<NUM>"),
    PatternRule("ipv4", re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"), "<IP>"),
    PatternRule("email", re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "<EMAIL>"),
    PatternRule("hex", re.compile(r"\b0x[0-9a-fA-F]+\b"), "<HEX>"),
    PatternRule("timestamp", re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}"), "<TIMESTAMP>"),
)


def extract_pattern(message: str, rules: Sequence[PatternRule] = DEFAULT_RULES) -> str:
    """Normalize a message by applying each rule in order.

    >>> extract_pattern("User 42 logged in")
    'User <NUM> logged in'
    """
    pattern = message
    for rule in rules:
        pattern = rule.apply(pattern)
    return pattern


def levenshtein(a: str, b: str) -> int:
    """Edit distance (insert/delete/substitute, unit costs)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        prev = cur
    return prev[-1]


def similarity(a: str, b: str) -> float:
    """Return ``1 - distance / max(len)``; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest
