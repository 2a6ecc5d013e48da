# Overview: Pytest coverage for the per-user view cache.

from oms.cache import UserViewCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = UserViewCache(ttl_seconds=300, clock=clock)
    produced = []

    def producer():
        produced.append(1)
        return len(produced)

    assert cache.get_or_set(7, "order-history:1:5:0", producer) == 1
    clock.now += 299
    assert cache.get_or_set(7, "order-history:1:5:0", producer) == 1

    clock.now += 2
    assert cache.cached_keys(7) == set()
    assert cache.get_or_set(7, "order-history:1:5:0", producer) == 2
    assert len(produced) == 2


def test_size_is_capped():
    clock = FakeClock()
    cache = UserViewCache(ttl_seconds=300, max_entries=3, clock=clock)

    for user_id in range(5):
        clock.now += 1
        cache.get_or_set(user_id, "orders", lambda: "view")

    assert len(cache) == 3
    # oldest entries are evicted first
    assert cache.cached_keys(0) == set()
    assert cache.cached_keys(1) == set()
    assert cache.cached_keys(4) == {"orders"}


def test_full_cache_drops_expired_entries_before_live_ones():
    clock = FakeClock()
    cache = UserViewCache(ttl_seconds=10, max_entries=2, clock=clock)

    cache.get_or_set(1, "a", lambda: "old")
    clock.now += 20
    cache.get_or_set(2, "b", lambda: "live")
    cache.get_or_set(3, "c", lambda: "new")

    assert len(cache) == 2
    assert cache.cached_keys(2) == {"b"}
    assert cache.cached_keys(3) == {"c"}


def test_invalidate_user_only_touches_that_user():
    cache = UserViewCache()
    cache.get_or_set(1, "orders", lambda: "one")
    cache.get_or_set(2, "orders", lambda: "two")

    cache.invalidate_user(1)
    cache.invalidate_user(None)

    assert cache.cached_keys(1) == set()
    assert cache.cached_keys(2) == {"orders"}


def test_app_cache_uses_configured_limits(app, cache):
    assert cache.ttl_seconds == app.config["VIEW_CACHE_TTL_SECONDS"]
    assert cache.max_entries == app.config["VIEW_CACHE_MAX_ENTRIES"]
