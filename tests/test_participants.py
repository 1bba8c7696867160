import json

from fedsearch_app.search.participants import (
    OTHER_PARTY_RESOLVERS, build_exclusion_sets, by_sole_participant, by_title,
    conversation_id, decode_participants, resolve_other_party
)


ALICE_AND_BOB = [{"zuid": "1", "dname": "Alice"}, {"zuid": "2", "dname": "Bob"}]


def test_resolves_participant_who_is_not_logged_in():
    assert resolve_other_party(ALICE_AND_BOB, logged_user_id="1", title="Bob") == "2"
    assert resolve_other_party(ALICE_AND_BOB, logged_user_id="2", title="Bob") == "1"


def test_falls_back_to_title_without_logged_in_user():
    assert resolve_other_party(ALICE_AND_BOB, logged_user_id=None, title="Bob") == "2"


def test_falls_back_to_sole_participant():
    assert resolve_other_party([{"zuid": 7, "dname": "Solo"}], None, "Someone else") == "7"


def test_unresolved_returns_none():
    assert resolve_other_party(ALICE_AND_BOB, None, "Carol") is None


def test_json_string_summary():
    assert resolve_other_party(json.dumps(ALICE_AND_BOB), "1", None) == "2"


def test_malformed_summary_never_raises():
    assert decode_participants("{not json") is None
    assert decode_participants('{"zuid": "1"}') is None
    assert resolve_other_party("{not json", "1", "Bob") is None
    assert resolve_other_party(None, "1", "Bob") is None


def test_resolver_order_is_configurable():
    resolvers = (by_title, by_sole_participant)

    assert resolve_other_party(ALICE_AND_BOB, "2", "Bob", resolvers=resolvers) == "2"
    assert resolve_other_party(ALICE_AND_BOB, "2", "Bob", resolvers=OTHER_PARTY_RESOLVERS) == "1"


def test_conversation_id_uses_counterpart_for_one_to_one():
    chat = {"chatid": "c9", "chat_type": "1", "title": "Bob", "recipantssummary": ALICE_AND_BOB}

    assert conversation_id(chat, "1") == "2"


def test_conversation_id_falls_back_to_chat_id():
    broken = {"chatid": 42, "chat_type": 1, "title": "Bob", "recipantssummary": "oops"}
    group = {"chatid": "g1", "chat_type": 8, "title": "Team"}

    assert conversation_id(broken, "1") == "42"
    assert conversation_id(group, "1") == "g1"


def test_build_exclusion_sets(local_chats, local_users):
    exclusions = build_exclusion_sets(local_chats, local_users, logged_user_id="100")

    assert exclusions.chat_ids == {"c1", "c2", "c3"}
    # counterparts of both one-to-one chats plus every local person
    assert exclusions.user_ids == {"200", "300", "400", "500"}


def test_build_exclusion_sets_numeric_ids_become_strings():
    exclusions = build_exclusion_sets([{"chatid": 12, "chat_type": 8}], [{"Zuid": 34}])

    assert exclusions.chat_ids == {"12"}
    assert exclusions.user_ids == {"34"}
