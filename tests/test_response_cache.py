import pytest

from fedsearch_app.search.cache import ResponseCache
from fedsearch_app.search.items import ORIGIN_REMOTE, ResultItem
from fedsearch_app.search.query_parser import parse_query


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def results():
    return [ResultItem(module="users", origin=ORIGIN_REMOTE, canonical_id="1", record={"full_name": "Ann"})]


def test_hit_within_ttl(clock, results):
    cache = ResponseCache(ttl=600, clock=clock)
    cache.set(parse_query("ann"), results, "all")

    clock.now += 599
    assert cache.get(parse_query("ann"), "all") == results


def test_miss_after_ttl(clock, results):
    cache = ResponseCache(ttl=600, clock=clock)
    cache.set(parse_query("ann"), results, "all")

    clock.now += 600
    assert cache.get(parse_query("ann"), "all") is None
    assert len(cache) == 0


def test_key_is_normalized(clock, results):
    cache = ResponseCache(clock=clock)
    cache.set(parse_query("  Ann   Lee from:Bob "), results)

    assert cache.get(parse_query("ann lee FROM:bob")) == results


def test_filters_are_part_of_the_key(clock, results):
    cache = ResponseCache(clock=clock)
    cache.set(parse_query("ann from:bob"), results)

    assert cache.get(parse_query("ann")) is None
    assert cache.get(parse_query("ann from:carol")) is None


def test_category_mismatch_is_a_miss(clock, results):
    cache = ResponseCache(clock=clock)
    cache.set(parse_query("ann"), results, "users")

    assert cache.get(parse_query("ann"), "all") is None
    assert cache.get(parse_query("ann"), "users") == results


def test_last_writer_wins(clock, results):
    cache = ResponseCache(clock=clock)
    cache.set(parse_query("ann"), results, "all")
    cache.set(parse_query("ann"), [], "channels")

    assert cache.get(parse_query("ann"), "all") is None
    assert cache.get(parse_query("ann"), "channels") == []


def test_lru_bound(clock, results):
    cache = ResponseCache(max_entries=2, clock=clock)
    cache.set(parse_query("a"), results)
    cache.set(parse_query("b"), results)
    cache.get(parse_query("a"))
    cache.set(parse_query("c"), results)

    assert cache.get(parse_query("b")) is None
    assert cache.get(parse_query("a")) == results
    assert cache.get(parse_query("c")) == results


def test_periodic_sweep_from_set(clock, results):
    cache = ResponseCache(ttl=600, sweep_interval=300, clock=clock)
    cache.set(parse_query("old"), results)

    clock.now += 700
    cache.set(parse_query("new"), results)

    assert len(cache) == 1


def test_evict_expired_and_stats(clock, results):
    cache = ResponseCache(ttl=10, clock=clock)
    cache.set(parse_query("a"), results)
    cache.set(parse_query("b"), results)
    cache.get(parse_query("a"))
    cache.get(parse_query("zzz"))

    clock.now += 11
    assert cache.evict_expired() == 2

    stats = cache.stats()
    assert stats["size"] == 0
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 50.0


def test_clear(clock, results):
    cache = ResponseCache(clock=clock)
    cache.set(parse_query("a"), results)
    cache.clear()

    assert len(cache) == 0
    assert cache.stats()["hits"] == 0
