import asyncio

import pytest

from fedsearch_app.cache import GlobalCache
from fedsearch_app.search.coordinator import LocalDataset, SearchCoordinator
from fedsearch_app.search.history import SearchHistory
from fedsearch_app.search.query_parser import parse_query, with_filters
from fedsearch_app.search.session import SearchSession, categories_for_context


@pytest.fixture
def history():
    return SearchHistory(GlobalCache(prefix="test:", redis_url=""))


@pytest.fixture
def coordinator(local_chats, local_users, fake_module):
    users = fake_module([{"zuid": "900", "full_name": "Alastair Cook"}])
    return SearchCoordinator(
        {"users": users}, dataset=LocalDataset(local_chats, local_users), enabled_modules=["users"],
    )


def test_query_and_filters_rederive_parsed_query():
    session = SearchSession()

    session.set_query("project notes")
    assert session.parsed_query.keywords == ["project", "notes"]

    session.add_filter("FROM", "@alice")
    assert session.parsed_query.filters == {"from": "alice"}
    assert session.parsed_query.trimmed == "project notes"

    session.add_filter("in", "#general")
    session.remove_filter("from")
    assert session.parsed_query.filters == {"in": "general"}

    session.clear_filters()
    assert session.parsed_query.filters == {}


def test_unknown_filter_is_rejected():
    session = SearchSession()

    with pytest.raises(ValueError):
        session.add_filter("color", "blue")


def test_context_resets_category():
    session = SearchSession()
    session.set_category("users")
    session.set_context("files")

    assert session.category == "all"
    assert session.available_categories == ["all", "you", "specific_sender", "taz"]
    assert categories_for_context("nowhere") == ["all"]


def test_run_applies_results_and_records_history(coordinator, history):
    session = SearchSession(history=history)
    session.set_query("al")

    outcome = asyncio.run(session.run(coordinator, logged_user_id="100"))

    assert not outcome.aborted
    assert not session.is_loading
    assert session.error is None
    assert [i.canonical_id for i in session.results] == ["c2", "200", "400", "900"]
    assert session.category_counts == {"all": 4, "channels": 1, "users": 3}
    assert session.search_history == ["al"]


def test_run_with_explicit_query_leaves_session_state_alone(coordinator, history):
    session = SearchSession(history=history)
    session.set_query("bob")
    session.set_category("users")

    outcome = asyncio.run(session.run(
        coordinator, logged_user_id="100", parsed_query=parse_query("al"), category="all",
    ))

    assert [i.canonical_id for i in outcome.results] == ["c2", "200", "400", "900"]
    assert session.query == "bob"
    assert session.category == "users"
    assert session.search_history == ["al"]


def test_explicit_query_history_keeps_filters(coordinator, history):
    session = SearchSession(history=history)

    asyncio.run(session.run(coordinator, parsed_query=with_filters("al", {"in": "ops"}), remote=False))

    assert session.search_history == ["al in:ops"]


def test_filtered_results_follow_category(coordinator):
    session = SearchSession()
    session.set_query("al")
    asyncio.run(session.run(coordinator, logged_user_id="100", remote=False))

    session.set_category("channels")

    assert [i.canonical_id for i in session.filtered_results] == ["c2"]
    assert session.to_dict()["results"][0]["id"] == "c2"


def test_only_latest_run_is_applied(local_chats, local_users):
    async def global_search(parsed_query, token):
        if parsed_query.trimmed == "al":
            await asyncio.sleep(0.5)
        return [{"chatid": "g1", "title": f"{parsed_query.trimmed} room", "chat_type": 8}]

    coordinator = SearchCoordinator({"globalsearch": global_search}, dataset=LocalDataset(local_chats, local_users))
    session = SearchSession()

    async def scenario():
        session.set_query("al")
        first = asyncio.ensure_future(session.run(coordinator))
        await asyncio.sleep(0.05)
        session.set_query("bob")
        second = await session.run(coordinator)
        return await first, second

    first, second = asyncio.run(scenario())

    assert first.aborted
    assert not second.aborted
    assert [i.canonical_id for i in session.results] == ["300", "g1"]


def test_pipeline_error_is_kept_on_session(local_chats, local_users, fake_module):
    def broken_fields(item):
        raise KeyError("display")

    coordinator = SearchCoordinator(
        {"users": fake_module([{"zuid": "900", "full_name": "Alastair Cook"}])},
        dataset=LocalDataset(local_chats, local_users),
        enabled_modules=["users"],
        get_fields=broken_fields,
    )
    session = SearchSession()
    session.set_query("al")

    assert asyncio.run(session.run(coordinator)) is None
    assert not session.is_loading
    assert "failed" in session.error


def test_clear_keeps_history(coordinator, history):
    session = SearchSession(history=history)
    session.set_query("al")
    asyncio.run(session.run(coordinator, remote=False))

    session.clear()

    assert session.query == ""
    assert session.results == []
    assert session.search_history == ["al"]
