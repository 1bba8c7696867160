import asyncio

from fedsearch_app.search.orchestrator import (
    GLOBAL_MODULE, CancellationToken, RemoteFetchOrchestrator
)
from fedsearch_app.search.local_search import LocalSearchResult
from fedsearch_app.search.participants import ExclusionSet
from fedsearch_app.search.query_parser import parse_query


def _fetch(orchestrator, query="ali", token=None, exclusions=None, **kwargs):
    token = token or CancellationToken("t1")
    return asyncio.run(orchestrator.fetch(
        parse_query(query), token, exclusions or ExclusionSet(), **kwargs
    ))


def test_plan_global_first_and_category_filter(fake_module):
    apis = {m: fake_module() for m in (GLOBAL_MODULE, "users", "channels", "messages")}
    orchestrator = RemoteFetchOrchestrator(apis)

    assert orchestrator.plan(["users", "channels", "messages"]) == [GLOBAL_MODULE, "users", "channels", "messages"]
    assert orchestrator.plan(["users", "channels"], "channels") == [GLOBAL_MODULE, "channels"]
    assert orchestrator.plan(["users"], "messages") == [GLOBAL_MODULE]
    # modules without an api are never planned
    assert orchestrator.plan(["files"]) == [GLOBAL_MODULE]


def test_plan_skips_modules_cooling_down(fake_module):
    users = fake_module([{"zuid": "900", "full_name": "Alien Ant"}])
    users.is_available = False
    channels = fake_module([{"chatid": "c9", "title": "alien club"}])
    orchestrator = RemoteFetchOrchestrator({"users": users, "channels": channels})

    assert orchestrator.plan(["users", "channels"]) == ["channels"]

    outcome = _fetch(orchestrator, enabled_modules=["users", "channels"])
    assert users.calls == []
    assert [r.module for r in outcome.reports] == ["channels"]

    users.is_available = True
    assert orchestrator.plan(["users", "channels"]) == ["users", "channels"]


def test_failure_is_isolated(fake_module):
    apis = {
        "users": fake_module(error=RuntimeError("boom")),
        "channels": fake_module([{"chatid": "c9", "title": "alien club"}]),
    }
    orchestrator = RemoteFetchOrchestrator(apis)

    outcome = _fetch(orchestrator, enabled_modules=["users", "channels"])

    assert [i.canonical_id for i in outcome.items] == ["c9"]
    assert outcome.failed_modules == ["users"]
    report = {r.module: r for r in outcome.reports}
    assert "boom" in report["users"].error
    assert report["channels"].ok


def test_results_already_held_locally_are_dropped(fake_module):
    apis = {
        "users": fake_module([
            {"zuid": 200, "full_name": "Alice Smith"},
            {"zuid": 600, "full_name": "Alison Park"},
        ]),
        "channels": fake_module([
            {"chatid": "c2", "title": "alpha-team"},
            {"chatid": "c9", "title": "alien club"},
        ]),
        "messages": fake_module([{"msguid": "m1", "message": "alright"}]),
    }
    exclusions = ExclusionSet(chat_ids={"c2"}, user_ids={"200"})
    orchestrator = RemoteFetchOrchestrator(apis)

    outcome = _fetch(orchestrator, exclusions=exclusions, enabled_modules=["users", "channels", "messages"])

    ids = sorted(i.canonical_id for i in outcome.items)
    assert ids == ["600", "c9", "m1"]
    by_id = {i.canonical_id: i for i in outcome.items}
    assert by_id["600"].module == "users"
    assert by_id["m1"].module == "messages"
    assert all(i.origin == "remote" for i in outcome.items)


def test_global_results_tagged_and_enrichment_built(fake_module):
    apis = {
        GLOBAL_MODULE: fake_module([
            {"chatid": "c2", "title": "alpha-team", "chat_type": 8},
            {"chatid": "c7", "title": "Alina", "chat_type": 1,
             "recipantssummary": [{"zuid": "100"}, {"zuid": "700", "dname": "Alina"}]},
        ]),
        "users": fake_module([
            {"zuid": "200", "full_name": "Alice Smith"},
            {"zuid": "800", "full_name": "Alistair"},
        ]),
    }
    exclusions = ExclusionSet(chat_ids={"c2"}, user_ids={"200"})
    orchestrator = RemoteFetchOrchestrator(apis)

    outcome = _fetch(orchestrator, exclusions=exclusions, enabled_modules=["users"], logged_user_id="100")

    global_items = [i for i in outcome.items if i.record.get("chat_type") is not None]
    assert [(i.module, i.canonical_id) for i in global_items] == [("channels", "c2"), ("users", "700")]
    assert [c["chatid"] for c in outcome.enrichment.chats] == ["c7"]
    assert [u["zuid"] for u in outcome.enrichment.users] == ["800"]


def test_cancellation_is_quiet(fake_module):
    slow = fake_module([{"zuid": "1", "full_name": "Ali"}], delay=1.0)
    fast = fake_module([{"chatid": "c1", "title": "alibi"}])
    orchestrator = RemoteFetchOrchestrator({"users": slow, "channels": fast})
    token = CancellationToken("t-cancel")

    async def scenario():
        task = asyncio.ensure_future(orchestrator.fetch(
            parse_query("ali"), token, ExclusionSet(), enabled_modules=["users", "channels"]
        ))
        await asyncio.sleep(0.05)
        token.cancel()
        return await task

    outcome = asyncio.run(scenario())

    report = {r.module: r for r in outcome.reports}
    assert report["users"].cancelled
    assert report["users"].error is None
    assert outcome.failed_modules == []
    assert token.cancelled


def test_cancelled_token_skips_module_calls(fake_module):
    module = fake_module([{"zuid": "1", "full_name": "Ali"}])
    token = CancellationToken("t-early")
    token.cancel()

    outcome = _fetch(RemoteFetchOrchestrator({"users": module}), token=token, enabled_modules=["users"])

    assert module.calls == []
    assert outcome.items == []
    assert outcome.reports[0].cancelled


def test_should_fetch_sparse_heuristic():
    orchestrator = RemoteFetchOrchestrator({}, sparse_threshold=2)

    assert orchestrator.should_fetch(LocalSearchResult())
    assert orchestrator.should_fetch(LocalSearchResult(chats=[object()] * 5, users=[object()]))
    assert not orchestrator.should_fetch(LocalSearchResult(chats=[object()] * 2, users=[object()] * 2))


def test_nothing_planned_returns_empty_outcome():
    outcome = _fetch(RemoteFetchOrchestrator({}), enabled_modules=["users"])

    assert outcome.items == []
    assert outcome.reports == []
    assert outcome.enrichment.is_empty
