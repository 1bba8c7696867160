from fedsearch_app.search.items import ORIGIN_REMOTE, ResultItem
from fedsearch_app.search.scorer import (
    AFTER_SPACE, EXACT, MIDDLE, STARTS_WITH, ScorerConfig, compute_score,
    deduplicate_by, detect_match, rank_results, score_query
)


def _item(module, record, canonical_id=None):
    return ResultItem(module=module, origin=ORIGIN_REMOTE, canonical_id=canonical_id, record=record)


def _fields(item):
    return item.display_fields()


def _no_weight(item):
    return None


def test_detect_match_types():
    assert detect_match("alice", "Alice").type == EXACT
    assert detect_match("ali", "Alice Smith").type == STARTS_WITH
    assert detect_match("smi", "Alice Smith").type == AFTER_SPACE
    assert detect_match("lic", "Alice Smith").type == MIDDLE
    assert detect_match("zzz", "Alice Smith") is None
    assert detect_match("", "Alice") is None
    assert detect_match("alice", None) is None


def test_detect_match_default_scores():
    assert detect_match("alice", " ALICE ").score == 1.5
    assert detect_match("ali", "alice").score == 1.0
    assert detect_match("smi", "alice smith").score == 0.6
    assert detect_match("lic", "alice").score == 0.3


def test_phrase_only_scored_for_multi_word_queries():
    fields = ["project alpha"]

    single = score_query(["project"], "project", fields)
    multi = score_query(["project", "alpha"], "project alpha", fields)

    assert single.type == STARTS_WITH
    assert multi.type == EXACT


def test_best_single_keyword_wins():
    fields = ["Alice Smith"]

    match = score_query(["zzz", "alice"], "zzz alice", fields)

    # one matching keyword is enough; its score is not averaged down
    assert match.type == STARTS_WITH
    assert match.score == 1.0


def test_compute_score_applies_weight():
    item = _item("users", {"full_name": "Alice"})

    scored = compute_score(item, ["alice"], "alice", item.display_fields(), weight=1.5)

    assert scored.score == 2.25
    assert scored.match_type == EXACT
    assert scored.match_score == 1.5
    # input is left untouched
    assert item.score is None


def test_compute_score_missing_weight_is_one():
    item = _item("files", {"name": "alice.txt"})

    scored = compute_score(item, ["alice"], "alice", item.display_fields(), weight=None)

    assert scored.score == 1.0


def test_compute_score_no_match():
    item = _item("files", {"name": "report.pdf"})

    assert compute_score(item, ["alice"], "alice", item.display_fields()) is None


def test_rank_results_sorted_and_filtered():
    items = [
        _item("files", {"name": "the alice file"}, "f1"),
        _item("files", {"name": "alice"}, "f2"),
        _item("files", {"name": "nothing here"}, "f3"),
        _item("files", {"name": "malice"}, "f4"),
    ]

    ranked = rank_results(items, ["alice"], "alice", _fields, _no_weight)

    assert [r.canonical_id for r in ranked] == ["f2", "f1", "f4"]
    scores = [r.score for r in ranked]
    assert scores == sorted(scores, reverse=True)


def test_rank_results_ties_keep_discovery_order():
    items = [_item("files", {"name": f"alice {n}"}, f"f{n}") for n in range(5)]

    ranked = rank_results(items, ["alice"], "alice", _fields, _no_weight)

    assert [r.canonical_id for r in ranked] == ["f0", "f1", "f2", "f3", "f4"]


def test_custom_scores():
    config = ScorerConfig.from_overrides({EXACT: 3.0, "bogus": 9})
    item = _item("files", {"name": "alice"})

    scored = compute_score(item, ["alice"], "alice", item.display_fields(), config=config)

    assert scored.score == 3.0
    assert config.match_scores[STARTS_WITH] == 1.0
    assert "bogus" not in config.match_scores


def test_deduplicate_keeps_highest_score():
    items = [
        _item("users", {"full_name": "Alice Smith"}, "1"),
        _item("users", {"full_name": "alice  smith"}, "2"),
        _item("users", {"full_name": "Bob"}, "3"),
    ]
    items[0].score, items[1].score, items[2].score = 1.0, 2.0, 1.5

    unique = deduplicate_by(items, lambda i: i.dedup_key())

    assert [u.canonical_id for u in unique] == ["2", "3"]


def test_deduplicate_equal_scores_keep_first():
    items = [_item("files", {"name": "x"}, "same"), _item("files", {"name": "y"}, "same")]
    for item in items:
        item.score = 1.0

    unique = deduplicate_by(items, lambda i: i.dedup_key())

    assert len(unique) == 1
    assert unique[0].record["name"] == "x"
