"""Unit tests for the Redis result cache (backed by fakeredis)."""
import warnings

import pytest
import redis
from xpp_mcp.cache.symbol_cache import (
    CacheKey,
    CacheTier,
    SymbolCache,
    are_keys_compatible,
    kinds_filter,
    make_key,
    normalize_query,
    parse_key,
)
from xpp_mcp.config import IndexConfig
from xpp_mcp.core.models import SymbolKind


class BrokenRedis:
    """Client whose every call fails like an unreachable server."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("Connection refused")
        return fail


class TestKeys:
    def test_normalize_query(self):
        assert normalize_query("  Cust   Helper!! ") == "cust helper"
        assert normalize_query("Cust*") == "cust"

    def test_kinds_filter(self):
        assert kinds_filter(None) == "all"
        assert kinds_filter([SymbolKind.TABLE, SymbolKind.CLASS]) == "class,table"

    def test_make_key(self):
        assert make_key("search", "CustHelper", None, 20) == "xpp:search:custhelper:all:20"
        assert make_key("class", "CustHelper", normalize=False) == "xpp:class:CustHelper:all:0"
        assert make_key("similar", "find", limit=10, normalize=False, scope="Cust:Helper") == \
            "xpp:similar:find:CustHelper:10"

    def test_parse_key(self):
        assert parse_key("xpp:search:custhelper:all:20") == CacheKey("search", "custhelper", "all", 20)
        assert parse_key("xpp:search:custhelper:all") is None
        assert parse_key("other:search:custhelper:all:20") is None
        assert parse_key("xpp:search:custhelper:all:many") is None

    def test_compatibility(self):
        a = CacheKey("search", "custhelper", "all", 20)

        assert are_keys_compatible(a, CacheKey("search", "custhelpr", "all", 30))
        assert not are_keys_compatible(a, CacheKey("search", "custhelper", "all", 31))
        assert not are_keys_compatible(a, CacheKey("search", "custhelper", "class", 20))
        assert not are_keys_compatible(a, CacheKey("ext", "custhelper", "all", 20))


class TestGetSet:
    def test_set_uses_tier_ttl(self, cache, fake_redis):
        assert cache.set("xpp:class:CustHelper:all:0", {"name": "CustHelper"}, CacheTier.LONG)

        assert cache.get("xpp:class:CustHelper:all:0") == {"name": "CustHelper"}
        assert 0 < fake_redis.ttl("xpp:class:CustHelper:all:0") <= 86400

    def test_set_expires_without_deprecated_calls(self, cache, fake_redis):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", DeprecationWarning)
            cache.set("xpp:search:a:all:20", [1], CacheTier.MEDIUM)

        assert [w for w in caught if issubclass(w.category, DeprecationWarning)] == []
        assert 3600 < fake_redis.ttl("xpp:search:a:all:20") <= 7200

    def test_custom_ttls(self, fake_redis):
        cache = SymbolCache(fake_redis, ttls={CacheTier.SHORT: 60})

        cache.set("xpp:search:a:all:20", [1])

        assert cache.ttl(CacheTier.SHORT) == 60
        assert cache.ttl(CacheTier.MEDIUM) == 7200
        assert fake_redis.ttl("xpp:search:a:all:20") <= 60

    def test_miss_and_counters(self, cache):
        assert cache.get("xpp:search:nothing:all:20") is None
        cache.set("xpp:search:a:all:20", [1])
        cache.get("xpp:search:a:all:20")

        stats = cache.stats()
        assert stats["enabled"] is True
        assert (stats["hits"], stats["misses"], stats["sets"]) == (1, 1, 1)
        assert stats["keys"] == 1

    def test_unserializable_value_is_not_cached(self, cache):
        assert cache.set("xpp:search:a:all:20", object()) is False
        assert cache.get("xpp:search:a:all:20") is None

    def test_delete(self, cache):
        cache.set("xpp:search:a:all:20", [1])
        cache.delete("xpp:search:a:all:20")
        assert cache.get("xpp:search:a:all:20") is None

    def test_clear_only_touches_namespace(self, cache, fake_redis):
        fake_redis.set("other:key", "1")
        for i in range(3):
            cache.set(f"xpp:search:q{i}:all:20", [i])

        assert cache.clear() == 3
        assert cache.key_count() == 0
        assert fake_redis.get("other:key") == "1"


class TestFuzzy:
    def test_similar_query_is_served(self, cache):
        cache.set(make_key("search", "CustHelper", None, 20), {"hits": ["CustHelper"]})

        value = cache.get_fuzzy(make_key("search", "CustHelpr", None, 25))

        assert value == {"hits": ["CustHelper"]}
        assert cache.stats()["fuzzy_hits"] == 1

    def test_filter_must_match(self, cache):
        cache.set(make_key("search", "CustHelper", [SymbolKind.CLASS], 20), {"hits": []})

        assert cache.get_fuzzy(make_key("search", "CustHelpr", None, 20)) is None

    def test_limit_delta_must_be_small(self, cache):
        cache.set(make_key("search", "CustHelper", None, 20), {"hits": []})

        assert cache.get_fuzzy(make_key("search", "CustHelpr", None, 50)) is None

    def test_dissimilar_query_misses(self, cache):
        cache.set(make_key("search", "CustHelper", None, 20), {"hits": []})

        assert cache.get_fuzzy(make_key("search", "VendTable", None, 20)) is None
        assert cache.stats()["misses"] == 1

    def test_most_similar_wins(self, cache):
        cache.set(make_key("search", "CustHelpers", None, 20), "two edits away")
        cache.set(make_key("search", "CustHelper", None, 20), "one edit away")

        assert cache.get_fuzzy(make_key("search", "CustHelpe", None, 20)) == "one edit away"


class TestWithCache:
    def test_computes_once(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return {"value": 42}

        first = cache.with_cache("xpp:patterns:x:all:20", CacheTier.MEDIUM, compute)
        second = cache.with_cache("xpp:patterns:x:all:20", CacheTier.MEDIUM, compute)

        assert first == ({"value": 42}, False)
        assert second == ({"value": 42}, True)
        assert len(calls) == 1

    def test_none_is_not_stored(self, cache):
        value, from_cache = cache.with_cache("xpp:class:Nope:all:0", CacheTier.LONG, lambda: None)

        assert (value, from_cache) == (None, False)
        assert cache.key_count() == 0

    def test_encode_and_decode(self, cache):
        key = "xpp:complete:CustTable.va:all:0"
        cache.with_cache(key, CacheTier.LONG, lambda: ("validateWrite",), encode=list, decode=tuple)

        value, from_cache = cache.with_cache(key, CacheTier.LONG, lambda: (), encode=list, decode=tuple)

        assert value == ("validateWrite",)
        assert from_cache is True


class TestDegradation:
    def test_disabled_cache_is_a_no_op(self):
        cache = SymbolCache(None)

        assert cache.enabled is False
        assert cache.set("xpp:search:a:all:20", [1]) is False
        assert cache.get_fuzzy("xpp:search:a:all:20") is None
        assert cache.clear() == 0
        assert cache.with_cache("xpp:search:a:all:20", CacheTier.SHORT, lambda: [2]) == ([2], False)
        assert cache.stats() == {"enabled": False, "hits": 0, "fuzzy_hits": 0, "misses": 0,
                                 "sets": 0, "errors": 0, "keys": 0}

    def test_redis_errors_degrade_to_misses(self, caplog):
        cache = SymbolCache(BrokenRedis())

        value, from_cache = cache.with_cache("xpp:search:a:all:20", CacheTier.SHORT, lambda: [1], fuzzy=True)

        assert (value, from_cache) == ([1], False)
        assert cache.clear() == 0
        assert cache.stats()["errors"] >= 3
        assert "continuing without cache" in caplog.text

    def test_from_config_disabled(self):
        cache = SymbolCache.from_config(IndexConfig(redis_enabled=False, ttl_short=99))

        assert cache.enabled is False
        assert cache.ttl(CacheTier.SHORT) == 99

    def test_from_config_unreachable_server(self):
        config = IndexConfig(redis_url="redis://127.0.0.1:1", redis_timeout=0.2)

        assert SymbolCache.from_config(config).enabled is False

    def test_from_config_malformed_url(self):
        assert SymbolCache.from_config(IndexConfig(redis_url="not-a-url")).enabled is False
