from __future__ import annotations

import asyncio
import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from feedrank.cache import keys
from feedrank.cache.redis_store import RedisFeedCache, to_redis_glob
from feedrank.cache.store import MISSING, compile_pattern
from feedrank.errors import CacheFault


def _fill(cache, *cache_keys, ttl=300):
    async def go():
        for k in cache_keys:
            await cache.set(k, {"key": k}, ttl)

    asyncio.run(go())


def _remaining(cache, *cache_keys):
    async def go():
        return [k for k in cache_keys if await cache.get(k) is not MISSING]

    return asyncio.run(go())


# ── key schema ─────────────────────────────────────────────────────────────

def test_feed_keys():
    assert keys.feed_key("home", "user123", 1) == "feed:home:user123:page:1"
    assert keys.feed_key("trending", keys.scope_for(None), 3) == "feed:trending:public:page:3"
    assert (
        keys.feed_key("community", "user123", 2, community_id="c9")
        == "feed:community:c9:user123:page:2"
    )


def test_scope_for_anonymous_is_public():
    assert keys.scope_for(None) == "public"
    assert keys.scope_for("") == "public"
    assert keys.scope_for("u1") == "u1"


# ── primitives ─────────────────────────────────────────────────────────────

def test_round_trip_then_expiry(cache, clock):
    _fill(cache, "feed:home:u1:page:1", ttl=60)
    assert asyncio.run(cache.get("feed:home:u1:page:1")) == {"key": "feed:home:u1:page:1"}

    clock.advance(59)
    assert asyncio.run(cache.get("feed:home:u1:page:1")) is not MISSING

    clock.advance(1)
    assert asyncio.run(cache.get("feed:home:u1:page:1")) is MISSING


def test_missing_is_distinct_from_stored_falsy_values(cache):
    async def go():
        await cache.set("feed:x:public:page:1", [], 60)
        return await cache.get("feed:x:public:page:1"), await cache.get("absent")

    stored, absent = asyncio.run(go())
    assert stored == []
    assert absent is MISSING
    assert not MISSING
    assert repr(MISSING) == "MISSING"


def test_set_replaces_whole_entry(cache):
    async def go():
        await cache.set("k", {"items": [1, 2]}, 60)
        await cache.set("k", {"items": [3]}, 60)
        return await cache.get("k")

    assert asyncio.run(go()) == {"items": [3]}


def test_delete(cache):
    _fill(cache, "a", "b")
    assert asyncio.run(cache.delete("a")) == 1
    assert asyncio.run(cache.delete("a")) == 0
    assert _remaining(cache, "a", "b") == ["b"]


# ── pattern deletion ───────────────────────────────────────────────────────

def test_delete_pattern_targets_one_scope(cache):
    _fill(
        cache,
        "feed:home:user123:page:1",
        "feed:home:user123:page:2",
        "feed:home:user456:page:1",
        "feed:following:user123:page:1",
    )
    assert asyncio.run(cache.delete_pattern("feed:home:user123:*")) == 2
    assert _remaining(
        cache,
        "feed:home:user123:page:1",
        "feed:home:user123:page:2",
        "feed:home:user456:page:1",
        "feed:following:user123:page:1",
    ) == ["feed:home:user456:page:1", "feed:following:user123:page:1"]


def test_scope_pattern_does_not_match_longer_ids(cache):
    _fill(cache, "feed:home:user1:page:1", "feed:home:user12:page:1")
    asyncio.run(cache.delete_pattern(keys.scope_pattern("home", "user1")))
    assert _remaining(cache, "feed:home:user1:page:1", "feed:home:user12:page:1") == [
        "feed:home:user12:page:1"
    ]


def test_wildcard_at_start_and_middle(cache):
    _fill(cache, "feed:home:a:page:2", "feed:trending:public:page:2", "feed:home:a:page:1")
    assert asyncio.run(cache.delete_pattern("*:page:2")) == 2
    assert _remaining(cache, "feed:home:a:page:1") == ["feed:home:a:page:1"]

    _fill(cache, "feed:home:public:page:1", "feed:trending:public:page:1")
    assert asyncio.run(cache.delete_pattern("feed:*:public:page:1")) == 2


def test_regex_metacharacters_match_literally(cache):
    _fill(cache, "feed:home:u.1:page:1", "feed:home:uX1:page:1", "feed:home:u+1:page:1")
    assert asyncio.run(cache.delete_pattern("feed:home:u.1:*")) == 1
    assert _remaining(cache, "feed:home:uX1:page:1", "feed:home:u+1:page:1") == [
        "feed:home:uX1:page:1",
        "feed:home:u+1:page:1",
    ]


def test_compile_pattern_requires_full_match():
    regex = compile_pattern("feed:home:*")
    assert regex.fullmatch("feed:home:u1:page:1")
    assert not regex.fullmatch("xfeed:home:u1:page:1")
    assert compile_pattern("feed:home").fullmatch("feed:home:extra") is None


def test_to_redis_glob_escapes_everything_but_star():
    assert to_redis_glob("feed:home:u?[1]\\:*") == "feed:home:u\\?\\[1\\]\\\\:*"


# ── invalidation helpers ───────────────────────────────────────────────────

def test_invalidate_feed(cache):
    _fill(cache, "feed:home:u1:page:1", "feed:following:u1:page:1")
    assert asyncio.run(cache.invalidate_feed("u1", "home")) == 1
    assert _remaining(cache, "feed:home:u1:page:1", "feed:following:u1:page:1") == [
        "feed:following:u1:page:1"
    ]


def test_invalidate_follower_feeds(cache):
    _fill(
        cache,
        "feed:home:f1:page:1",
        "feed:following:f1:page:1",
        "feed:home:f2:page:3",
        "feed:home:f3:page:1",
        "feed:trending:f1:page:1",
    )
    assert asyncio.run(cache.invalidate_follower_feeds(["f1", "f2"])) == 3
    assert _remaining(
        cache, "feed:home:f3:page:1", "feed:trending:f1:page:1"
    ) == ["feed:home:f3:page:1", "feed:trending:f1:page:1"]


def test_invalidate_follower_feeds_with_no_followers(cache):
    _fill(cache, "feed:home:f1:page:1")
    assert asyncio.run(cache.invalidate_follower_feeds([])) == 0
    assert asyncio.run(cache.invalidate_follower_feeds(None)) == 0
    assert _remaining(cache, "feed:home:f1:page:1") == ["feed:home:f1:page:1"]


def test_invalidate_community_feed_covers_every_scope(cache):
    _fill(
        cache,
        "feed:community:c1:public:page:1",
        "feed:community:c1:u1:page:2",
        "feed:community:c2:public:page:1",
    )
    assert asyncio.run(cache.invalidate_community_feed("c1")) == 2
    assert _remaining(cache, "feed:community:c2:public:page:1") == [
        "feed:community:c2:public:page:1"
    ]


def test_invalidate_trending_feed(cache):
    _fill(cache, "feed:trending:public:page:1", "feed:trending:u1:page:2", "feed:home:u1:page:1")
    assert asyncio.run(cache.invalidate_trending_feed()) == 2
    assert _remaining(cache, "feed:home:u1:page:1") == ["feed:home:u1:page:1"]


# ── housekeeping ───────────────────────────────────────────────────────────

def test_stats_count_hits_and_misses(cache):
    _fill(cache, "a", "b")

    async def go():
        await cache.get("a")
        await cache.get("a")
        await cache.get("zzz")
        return await cache.stats()

    stats = asyncio.run(go())
    assert (stats.hits, stats.misses, stats.keys) == (2, 1, 2)


def test_purge_expired(cache, clock):
    _fill(cache, "short", ttl=60)
    _fill(cache, "long", ttl=300)
    clock.advance(120)
    assert asyncio.run(cache.purge_expired()) == 1
    assert asyncio.run(cache.stats()).keys == 1


def test_clear_all_resets_entries_and_counters(cache):
    _fill(cache, "a", "b")
    asyncio.run(cache.get("a"))
    asyncio.run(cache.clear_all())
    stats = asyncio.run(cache.stats())
    assert (stats.hits, stats.misses, stats.keys) == (0, 0, 0)


def test_concurrent_writers_keep_every_entry(cache):
    async def go():
        await asyncio.gather(*(cache.set(f"feed:home:u{n}:page:1", n, 60) for n in range(50)))
        return await cache.stats()

    assert asyncio.run(go()).keys == 50


# ── redis backend ──────────────────────────────────────────────────────────

class DummyRedis:
    """Just enough of redis.asyncio.Redis for the feed cache."""

    def __init__(self):
        self.store = {}
        self.expiry = {}
        self.down = False

    def _check(self):
        if self.down:
            raise RedisConnectionError("connection refused")

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        self.expiry[key] = ex

    async def delete(self, *cache_keys):
        self._check()
        return sum(1 for k in cache_keys if self.store.pop(k, None) is not None)

    async def scan_iter(self, match=None, count=None):
        self._check()
        for k in list(self.store):
            if fnmatch.fnmatchcase(k, match):
                yield k


def test_redis_cache_round_trip_and_patterns():
    client = DummyRedis()
    cache = RedisFeedCache(client)

    async def go():
        await cache.set("feed:home:u1:page:1", {"items": [1]}, 300)
        await cache.set("feed:home:u1:page:2", {"items": [2]}, 300)
        await cache.set("feed:home:u2:page:1", {"items": [3]}, 300)
        value = await cache.get("feed:home:u1:page:1")
        absent = await cache.get("feed:home:u9:page:1")
        deleted = await cache.invalidate_feed("u1", "home")
        return value, absent, deleted, await cache.stats()

    value, absent, deleted, stats = asyncio.run(go())

    assert value == {"items": [1]}
    assert absent is MISSING
    assert deleted == 2
    assert client.expiry["feed:home:u2:page:1"] == 300
    assert (stats.hits, stats.misses, stats.keys) == (1, 1, 1)


def test_redis_errors_surface_as_cache_faults():
    client = DummyRedis()
    client.down = True
    cache = RedisFeedCache(client)

    with pytest.raises(CacheFault):
        asyncio.run(cache.get("feed:home:u1:page:1"))
    with pytest.raises(CacheFault):
        asyncio.run(cache.delete_pattern("feed:home:u1:*"))


def test_redis_corrupt_entry_is_a_cache_fault():
    client = DummyRedis()
    client.store["feed:home:u1:page:1"] = "{not json"

    with pytest.raises(CacheFault):
        asyncio.run(RedisFeedCache(client).get("feed:home:u1:page:1"))
