from __future__ import annotations

import re

import pytest

from log_insight.core.patterns import PatternRule, extract_pattern, levenshtein, similarity


def test_numbers_collapse_into_one_pattern() -> None:
    assert extract_pattern("user 42 logged in") == extract_pattern("user 99 logged in") == "user <NUM> logged in"


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("job 550e8400-e29b-41d4-a716-446655440000 done", "job <UUID> done"),
        ("mail to ops@example.com bounced", "mail to <EMAIL> bounced"),
        ("fault at 0x7ffe12", "fault at <HEX>"),
        ("", ""),
    ],
)
def test_placeholders(message: str, expected: str) -> None:
    assert extract_pattern(message) == expected


def test_numbers_are_replaced_before_ip_and_timestamp_rules() -> None:
    assert extract_pattern("from 10.0.0.1") == "from <NUM>.<NUM>.<NUM>.<NUM>"
    assert extract_pattern("at 2025-12-30T08:00:00") == "at <NUM>-<NUM>-30T08:<NUM>:<NUM>"


def test_custom_rules_run_in_given_order() -> None:
    rules = (
        PatternRule("ipv4", re.compile(r"\b\d{1,3}(?:\.\d{1,3}){3}\b"), "<IP>"),
        PatternRule("number", re.compile(r"\b\d+\b"), "<NUM>"),
    )
    assert extract_pattern("from 10.0.0.1 port 443", rules) == "from <IP> port <NUM>"


def test_levenshtein() -> None:
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("same", "same") == 0


def test_similarity_bounds() -> None:
    assert similarity("", "") == 1.0
    assert similarity("abc", "xyz") == 0.0
    assert similarity("user <NUM> logged in", "user <NUM> logged out") == pytest.approx(1 - 3 / 21)
