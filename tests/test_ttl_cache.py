from __future__ import annotations


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_ttl_cache_serves_value_until_expiry():
    from game_catalog_sync.utils.ttl_cache import TTLCache

    clock = FakeClock()
    cache = TTLCache(10.0, clock=clock)
    cache.set("k", "v")

    clock.now += 9.9
    assert cache.lookup("k") == (True, "v")

    clock.now += 0.1
    assert cache.lookup("k") == (False, None)
    assert cache.stats["cache_expired"] == 1


def test_ttl_cache_distinguishes_cached_none_from_miss():
    from game_catalog_sync.utils.ttl_cache import TTLCache

    cache = TTLCache(60.0)
    assert cache.lookup("absent") == (False, None)

    cache.set("negative", None)
    assert cache.lookup("negative") == (True, None)
    assert cache.stats["cache_hit"] == 1
    assert cache.stats["cache_miss"] == 1


def test_ttl_cache_per_entry_ttl_overrides_default():
    from game_catalog_sync.utils.ttl_cache import TTLCache

    clock = FakeClock()
    cache = TTLCache(3600.0, clock=clock)
    cache.set("short", 1, ttl_s=1.0)
    cache.set("long", 2)

    clock.now += 2.0
    assert cache.lookup("short") == (False, None)
    assert cache.lookup("long") == (True, 2)
    assert len(cache) == 1


def test_ttl_cache_drops_expired_keys_that_are_never_read_again():
    from game_catalog_sync.utils.ttl_cache import TTLCache

    clock = FakeClock()
    cache = TTLCache(3600.0, clock=clock, purge_every=2)
    cache.set("a", "old", ttl_s=1.0)

    clock.now += 5.0
    cache.set("b", 1)
    cache.set("c", 2)

    # "a" was swept by the periodic purge without being looked up.
    assert "a" not in cache._entries
    assert cache.stats["cache_expired"] == 1
    assert cache.stats["cache_miss"] == 0
    assert cache.purge_expired() == 0
    assert len(cache) == 2
