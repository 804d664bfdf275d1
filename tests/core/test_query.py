from __future__ import annotations

from log_insight.core.models import LogLevel
from log_insight.core.query import FieldFilter, FilterOperator, QueryBuilder, parse_query


def test_parse_mixed_query() -> None:
    q = parse_query('+error -debug "connection reset" level:warning')

    required = [t for t in q.terms if t.required]
    excluded = [t for t in q.terms if t.excluded]
    phrases = [t for t in q.terms if t.is_phrase]

    assert [t.text for t in required] == ["error"]
    assert [t.text for t in excluded] == ["debug"]
    assert [t.text for t in phrases] == ["connection reset"]
    assert len(q.terms) == 3
    assert q.field_filters == (FieldFilter(field="level", value="warning", op=FilterOperator.EQUALS),)


def test_parse_quoted_field_value_keeps_spaces() -> None:
    q = parse_query('service:"billing api" timeout')
    assert q.field_filters[0].value == "billing api"
    assert [t.text for t in q.terms] == ["timeout"]


def test_parse_skips_bare_prefix_characters() -> None:
    q = parse_query("+ - ok")
    assert [t.text for t in q.terms] == ["ok"]


def test_parse_empty_query() -> None:
    q = parse_query("   ")
    assert q.terms == ()
    assert q.field_filters == ()


def test_scored_terms_exclude_negations() -> None:
    q = parse_query("a1 +b2 -c3")
    assert [t.text for t in q.scored_terms] == ["a1", "b2"]


def test_operator_compare_is_lexicographic() -> None:
    assert FilterOperator.GREATER_THAN.compare("b", "a")
    assert FilterOperator.LESS_OR_EQUAL.compare("10", "9")
    assert FilterOperator.CONTAINS.compare("checkout-service", "out")
    assert FilterOperator.NOT_EQUALS.compare("a", "b")


def test_builder_round_trips_through_parser() -> None:
    raw = (
        QueryBuilder()
        .required("error")
        .exclude("debug")
        .phrase("connection reset")
        .term("db")
        .field("region", "eu west")
        .level(LogLevel.ERROR)
        .build()
    )
    assert raw == '+error -debug "connection reset" db region:"eu west" level:error'

    q = parse_query(raw)
    assert [(f.field, f.value) for f in q.field_filters] == [("region", "eu west"), ("level", "error")]
    assert [t.text for t in q.terms] == ["connection reset", "error", "debug", "db"]
