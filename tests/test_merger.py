from fedsearch_app.search.items import (
    ORIGIN_LOCAL, ORIGIN_REMOTE, ResultItem, make_weight_getter
)
from fedsearch_app.search.merger import merge_results
from fedsearch_app.search.query_parser import parse_query


def _local(module, canonical_id, record):
    return ResultItem(module=module, origin=ORIGIN_LOCAL, canonical_id=canonical_id, record=record)


def _remote(module, canonical_id, record):
    return ResultItem(module=module, origin=ORIGIN_REMOTE, canonical_id=canonical_id, record=record)


def test_local_first_then_ranked_remote():
    local = [
        _local("channels", "c2", {"title": "alpha-team"}),
        _local("users", "400", {"full_name": "Alan Turing"}),
    ]
    remote = [
        _remote("files", "f1", {"name": "the alan file"}),
        _remote("users", "900", {"full_name": "Alan"}),
        _remote("files", "f2", {"name": "unrelated"}),
    ]

    merged = merge_results(local, remote, parse_query("alan"), make_weight_getter())

    assert merged[:2] == local
    assert [i.canonical_id for i in merged[2:]] == ["900", "f1"]
    assert merged[2].score == 2.25
    # local items are never re-scored
    assert merged[0].score is None


def test_no_remote_item_shares_a_dedup_key_with_a_local_item():
    local = [_local("users", "200", {"full_name": "Alice Smith"})]
    remote = [
        _remote("users", "201", {"full_name": "alice smith"}),
        _remote("channels", "c9", {"title": "alice fans"}),
        _remote("users", "202", {"full_name": "Alice Smithson"}),
    ]

    merged = merge_results(local, remote, parse_query("alice"), make_weight_getter())

    local_keys = {i.dedup_key() for i in merged if i.origin == ORIGIN_LOCAL}
    remote_keys = [i.dedup_key() for i in merged if i.origin == ORIGIN_REMOTE]
    assert not local_keys.intersection(remote_keys)
    assert sorted(i.canonical_id for i in merged[1:]) == ["202", "c9"]


def test_remote_duplicates_collapse_to_best_score():
    remote = [
        _remote("messages", "m1", {"message": "meeting about budget"}),
        _remote("messages", "m1", {"message": "budget"}),
    ]

    merged = merge_results([], remote, parse_query("budget"), make_weight_getter())

    assert len(merged) == 1
    assert merged[0].match_type == "exact"


def test_weights_and_max_results():
    remote = [
        _remote("settings", "s1", {"name": "Theme"}),
        _remote("users", "u1", {"full_name": "Theme Park Fan"}),
        _remote("channels", "c1", {"title": "theme"}),
    ]
    get_weight = make_weight_getter({"settings": 10})

    merged = merge_results([], remote, parse_query("theme"), get_weight, max_results=2)

    assert [i.canonical_id for i in merged] == ["s1", "c1"]


def test_custom_field_and_key_functions():
    remote = [
        _remote("apps", "a1", {"label": "Calendar"}),
        _remote("apps", "a2", {"label": "calendar"}),
    ]

    merged = merge_results(
        [], remote, parse_query("calendar"), make_weight_getter(),
        get_fields=lambda item: [item.record["label"]],
        get_dedup_key=lambda item: item.record["label"].lower(),
    )

    assert len(merged) == 1
    assert merged[0].canonical_id == "a1"
