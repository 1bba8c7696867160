import pytest

from fedsearch_app.search.query_parser import (
    needs_server_fetch, parse_query, serialize_query, with_filters
)


def test_extracts_filter_and_strips_marker():
    pq = parse_query("from:@alice project")

    assert pq.filters == {"from": "alice"}
    assert pq.keywords == ["project"]
    assert pq.trimmed == "project"
    assert pq.phrase == "project"
    assert not pq.is_empty
    assert not pq.is_multi_word


def test_unknown_token_stays_in_text():
    pq = parse_query("foo:bar baz")

    assert pq.filters == {}
    assert pq.keywords == ["foo:bar", "baz"]
    assert pq.is_multi_word


def test_filter_keys_are_lowercased():
    pq = parse_query("IN:#general Report")

    assert pq.filters == {"in": "general"}
    assert pq.keywords == ["Report"]


def test_whitespace_is_collapsed():
    pq = parse_query("   hello    big   world  ")

    assert pq.trimmed == "hello big world"
    assert pq.keywords == ["hello", "big", "world"]


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_empty_input(raw):
    pq = parse_query(raw)

    assert pq.is_empty
    assert pq.keywords == []
    assert pq.filters == {}


def test_filter_only_query_is_not_empty():
    pq = parse_query("after:2024-01-01")

    assert pq.keywords == []
    assert pq.filters == {"after": "2024-01-01"}
    assert not pq.is_empty


def test_serialize_sorts_filters():
    pq = parse_query("to:bob report from:alice")

    assert serialize_query(pq) == "report from:alice to:bob"


@pytest.mark.parametrize("raw", [
    "from:@alice project",
    "quarterly report in:finance before:2024-05-01",
    "on:2023-12-25",
    "plain words only",
])
def test_serialize_then_parse_is_stable(raw):
    pq = parse_query(raw)
    again = parse_query(serialize_query(pq))

    assert again.keywords == pq.keywords
    assert again.filters == pq.filters


def test_with_filters_adds_explicit_filters():
    pq = with_filters("budget", {"from": "carol", "in": "#ops"})

    assert pq.keywords == ["budget"]
    assert pq.filters == {"from": "carol", "in": "ops"}


def test_needs_server_fetch():
    assert not needs_server_fetch(parse_query("al"))
    assert needs_server_fetch(parse_query("ali"))
    assert needs_server_fetch(parse_query("from:bob"))
    assert needs_server_fetch(parse_query("al"), min_len=2)
