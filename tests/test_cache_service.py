"""Tests for the two-tier cache."""
import json
import threading
from unittest.mock import Mock

import pytest
import redis

from smartmeal.caching.cache_service import (
    CacheBackend,
    MemoryCacheBackend,
    RedisCacheBackend,
    TwoTierCache,
)
from smartmeal.config import CacheSettings
from smartmeal.data_layer.exceptions import CacheError


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FailingBackend(CacheBackend):
    """Backend whose every operation fails."""

    def get(self, key):
        raise CacheError("get", key, "connection refused")

    def set(self, key, value, ttl):
        raise CacheError("set", key, "connection refused")

    def delete(self, key):
        raise CacheError("delete", key, "connection refused")

    def delete_pattern(self, pattern):
        raise CacheError("delete_pattern", pattern, "connection refused")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def local(clock):
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def distributed(clock):
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def cache(local, distributed):
    return TwoTierCache(local=local, distributed=distributed, settings=CacheSettings())


class TestMemoryCacheBackend:
    """Tests for MemoryCacheBackend."""

    def test_set_and_get(self, local):
        local.set("k", {"a": 1}, 60)
        assert local.get("k") == {"a": 1}

    def test_entry_expires(self, local, clock):
        local.set("k", "v", 60)
        clock.advance(61)
        assert local.get("k") is None

    def test_zero_ttl_is_not_stored(self, local):
        local.set("k", "v", 0)
        assert local.get("k") is None

    def test_delete_pattern(self, local):
        local.set("app:user:1:a", 1, 60)
        local.set("app:user:1:b", 2, 60)
        local.set("app:user:2:a", 3, 60)
        assert local.delete_pattern("app:user:1:*") == 2
        assert local.get("app:user:2:a") == 3
        assert len(local) == 1

    def test_evicts_when_full(self, clock):
        backend = MemoryCacheBackend(max_entries=2, clock=clock)
        backend.set("a", 1, 10)
        backend.set("b", 2, 100)
        backend.set("c", 3, 100)
        assert len(backend) == 2
        assert backend.get("a") is None
        assert backend.get("c") == 3

    def test_concurrent_access(self):
        backend = MemoryCacheBackend()
        errors = []

        def worker(n):
            try:
                for i in range(200):
                    backend.set(f"{n}:{i}", i, 60)
                    assert backend.get(f"{n}:{i}") == i
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(backend) == 1600


class TestTwoTierCache:
    """Tests for TwoTierCache."""

    def test_set_writes_both_tiers(self, cache, local, distributed):
        cache.set("k", [1, 2], 600)
        assert local.get("k") == [1, 2]
        assert distributed.get("k") == [1, 2]

    def test_local_ttl_is_capped(self, cache, local, distributed, clock):
        """Test that the local tier keeps entries at most 5 minutes."""
        cache.set("k", "v", 1800)
        clock.advance(301)
        assert local.get("k") is None
        assert distributed.get("k") == "v"

    def test_distributed_hit_repopulates_local(self, cache, local, clock):
        cache.set("k", "v", 1800)
        clock.advance(301)
        assert cache.get("k") == "v"
        assert local.get("k") == "v"

    def test_get_or_compute_calls_factory_once(self, cache):
        factory = Mock(return_value=["r1"])
        assert cache.get_or_compute("k", factory, ttl=600) == ["r1"]
        assert cache.get_or_compute("k", factory, ttl=600) == ["r1"]
        assert factory.call_count == 1

    def test_none_is_never_cached(self, cache):
        factory = Mock(return_value=None)
        assert cache.get_or_compute("k", factory) is None
        assert cache.get_or_compute("k", factory) is None
        assert factory.call_count == 2

    def test_empty_result_uses_short_ttl(self, cache, distributed, clock):
        cache.get_or_compute("k", lambda: [], ttl=1800)
        clock.advance(299)
        assert distributed.get("k") == []
        clock.advance(2)
        assert distributed.get("k") is None

    def test_factory_error_propagates_and_nothing_is_cached(self, cache, local, distributed):
        def boom():
            raise RuntimeError("store down")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("k", boom)
        assert local.get("k") is None
        assert distributed.get("k") is None

    def test_invalidate_clears_both_tiers(self, cache, local, distributed):
        cache.set("k", "v", 600)
        cache.invalidate("k")
        assert local.get("k") is None
        assert distributed.get("k") is None

    def test_invalidate_by_pattern(self, cache, local, distributed):
        cache.set("smartmeal:user:1:mealplans:a", 1, 600)
        cache.set("smartmeal:user:1:mealplans:b", 2, 600)
        cache.set("smartmeal:user:2:mealplans:a", 3, 600)

        removed = cache.invalidate_by_pattern("smartmeal:user:1:mealplans:*")

        assert removed == 4
        assert cache.get("smartmeal:user:1:mealplans:a") is None
        assert cache.get("smartmeal:user:2:mealplans:a") == 3

    def test_pattern_without_wildcard_is_prefix(self, cache):
        cache.set("smartmeal:recipes:filtered:dinner:abc", 1, 600)
        cache.invalidate_by_pattern("smartmeal:recipes:filtered")
        assert cache.get("smartmeal:recipes:filtered:dinner:abc") is None

    def test_failing_distributed_tier_degrades_to_miss(self, local):
        cache = TwoTierCache(local=local, distributed=FailingBackend())
        factory = Mock(return_value={"v": 1})

        assert cache.get_or_compute("k", factory) == {"v": 1}
        cache.invalidate("k")
        assert cache.invalidate_by_pattern("k*") == 0

    def test_failing_local_tier_degrades_to_miss(self, distributed):
        cache = TwoTierCache(local=FailingBackend(), distributed=distributed)
        assert cache.get_or_compute("k", lambda: "v") == "v"
        assert cache.get("k") == "v"

    def test_without_distributed_tier(self):
        cache = TwoTierCache()
        cache.set("k", "v")
        assert cache.get("k") == "v"

    def test_from_settings_without_redis(self):
        cache = TwoTierCache.from_settings(CacheSettings(local_max_entries=5))
        assert cache.distributed is None
        assert cache.local.max_entries == 5


class TestRedisCacheBackend:
    """Tests for RedisCacheBackend with a mocked client."""

    def test_get_decodes_json(self):
        client = Mock()
        client.get.return_value = json.dumps({"ids": [1, 2]})
        assert RedisCacheBackend(client).get("k") == {"ids": [1, 2]}

    def test_get_miss(self):
        client = Mock()
        client.get.return_value = None
        assert RedisCacheBackend(client).get("k") is None

    def test_set_uses_expiry(self):
        client = Mock()
        RedisCacheBackend(client).set("k", [1], 1800)
        client.set.assert_called_once_with("k", "[1]", ex=1800)

    def test_connection_error_becomes_cache_error(self):
        client = Mock()
        client.get.side_effect = redis.ConnectionError("down")
        with pytest.raises(CacheError) as exc_info:
            RedisCacheBackend(client).get("k")
        assert exc_info.value.context["operation"] == "get"

    def test_unserializable_value_raises_cache_error(self):
        with pytest.raises(CacheError):
            RedisCacheBackend(Mock()).set("k", object(), 60)

    def test_delete_pattern_scans_and_deletes(self):
        client = Mock()
        client.scan_iter.return_value = iter(["a:1", "a:2"])
        client.delete.return_value = 2
        assert RedisCacheBackend(client).delete_pattern("a:*") == 2
        client.delete.assert_called_once_with("a:1", "a:2")

    def test_two_tier_survives_redis_outage(self):
        client = Mock()
        client.get.side_effect = redis.ConnectionError("down")
        client.set.side_effect = redis.ConnectionError("down")
        cache = TwoTierCache(distributed=RedisCacheBackend(client))
        assert cache.get_or_compute("k", lambda: [1]) == [1]
