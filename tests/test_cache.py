"""Unit tests for ResultCache keys, reads, writes and invalidation."""
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.features.permissions.cache import CacheMetrics, ResultCache, make_cache_key
from app.features.permissions.types import Decision
from tests.fakes import FailingKeyValueCache, FakeKeyValueCache


@pytest.fixture
def backend():
    return FakeKeyValueCache()


@pytest.fixture
def cache(backend):
    return ResultCache(backend, namespace="test", ttl=60)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class TestCacheKeys:
    def test_unscoped(self):
        assert make_cache_key("rbac", 7, "users.read") == "rbac:perm:7:users.read"

    def test_department_scope(self):
        assert make_cache_key("rbac", 7, "emp.edit", 2) == "rbac:perm:7:emp.edit:2"

    def test_department_and_target(self):
        assert make_cache_key("rbac", 7, "emp.edit", 2, 9) == "rbac:perm:7:emp.edit:2:9"

    def test_target_without_department_keeps_empty_segment(self):
        assert make_cache_key("rbac", 7, "emp.edit", None, 9) == "rbac:perm:7:emp.edit::9"

    def test_colon_in_name_cannot_fake_a_scope(self):
        assert make_cache_key("rbac", 7, "emp.edit:2") != make_cache_key("rbac", 7, "emp.edit", 2)


# ---------------------------------------------------------------------------
# Reads and writes
# ---------------------------------------------------------------------------


class TestReadWrite:
    async def test_round_trip_with_ttl(self, cache, backend):
        await cache.set(7, "users.read", Decision.ALLOW)

        assert await cache.get(7, "users.read") is Decision.ALLOW
        assert backend.ttls["test:perm:7:users.read"] == 60
        assert cache.metrics.snapshot()["hits"] == 1
        assert cache.metrics.snapshot()["writes"] == 1

    async def test_deny_is_cached_too(self, cache):
        await cache.set(7, "users.write", Decision.DENY, department_id=3)

        assert await cache.get(7, "users.write", department_id=3) is Decision.DENY
        assert await cache.get(7, "users.write") is None

    async def test_malformed_value_is_a_miss(self, cache, backend):
        backend.store["test:perm:7:users.read"] = "maybe"

        assert await cache.get(7, "users.read") is None
        assert cache.metrics.snapshot()["malformed"] == 1

    async def test_failing_backend_never_raises(self):
        cache = ResultCache(FailingKeyValueCache(), namespace="test")

        assert await cache.get(7, "users.read") is None
        await cache.set(7, "users.read", Decision.ALLOW)
        assert await cache.invalidate_all() == 0
        assert cache.metrics.snapshot()["errors"] == 4

    async def test_disabled_cache_is_inert(self):
        cache = ResultCache(None, namespace="test")

        await cache.set(7, "users.read", Decision.ALLOW)
        assert await cache.get(7, "users.read") is None
        stats = await cache.stats()
        assert stats["enabled"] is False
        assert "cached_decisions" not in stats


# ---------------------------------------------------------------------------
# Invalidation
# ---------------------------------------------------------------------------


class TestInvalidation:
    async def test_employee_prefix_does_not_touch_similar_ids(self, cache, backend):
        await cache.set(1, "users.read", Decision.ALLOW)
        await cache.set(1, "emp.edit", Decision.DENY, department_id=2)
        await cache.set(12, "users.read", Decision.ALLOW)

        assert await cache.invalidate_employee(1) == 2
        assert list(backend.decisions()) == ["test:perm:12:users.read"]

    async def test_invalidate_employees_dedupes(self, cache, backend):
        await cache.set(1, "users.read", Decision.ALLOW)
        await cache.set(2, "users.read", Decision.ALLOW)

        assert await cache.invalidate_employees([1, 2, 1]) == 2
        assert backend.decisions() == {}

    async def test_invalidate_all_keeps_foreign_keys(self, cache, backend):
        backend.store["test:meta:version"] = "3"
        backend.store["other:perm:1:users.read"] = "allow"
        await cache.set(1, "users.read", Decision.ALLOW)

        assert await cache.invalidate_all() == 1
        assert set(backend.store) == {"test:meta:version", "other:perm:1:users.read", "test:epoch"}

    async def test_clear_all_drops_whole_namespace(self, cache, backend):
        backend.store["test:meta:version"] = "3"
        await cache.set(1, "users.read", Decision.ALLOW)

        assert await cache.clear_all() == 2
        assert cache.metrics.snapshot()["invalidated_keys"] == 2

    async def test_stats_counts_decisions(self, cache):
        await cache.set(1, "users.read", Decision.ALLOW)
        await cache.set(2, "users.read", Decision.DENY)

        stats = await cache.stats()
        assert stats["namespace"] == "test"
        assert stats["cached_decisions"] == 2
        assert stats["ttl_seconds"] == 60


# ---------------------------------------------------------------------------
# Epoch fencing
# ---------------------------------------------------------------------------


class TestEpochFencing:
    async def test_write_lands_when_nothing_changed(self, cache, backend):
        generation = await cache.generation(7)

        assert await cache.set_if_current(7, "users.read", Decision.ALLOW, generation) is True
        assert backend.decisions() == {"test:perm:7:users.read": "allow"}

    async def test_invalidate_all_fences_earlier_reads(self, cache, backend):
        generation = await cache.generation(7)
        await cache.invalidate_all()

        assert await cache.set_if_current(7, "users.read", Decision.ALLOW, generation) is False
        assert backend.decisions() == {}
        assert cache.metrics.snapshot()["stale_writes"] == 1

    async def test_employee_invalidation_fences_only_that_employee(self, cache, backend):
        seven, eight = await cache.generation(7), await cache.generation(8)
        await cache.invalidate_employee(7)

        assert await cache.set_if_current(7, "users.read", Decision.ALLOW, seven) is False
        assert await cache.set_if_current(8, "users.read", Decision.ALLOW, eight) is True
        assert list(backend.decisions()) == ["test:perm:8:users.read"]

    async def test_clear_all_fences_even_an_empty_namespace(self, cache, backend):
        generation = await cache.generation(7)
        await cache.clear_all()

        assert await cache.set_if_current(7, "users.read", Decision.ALLOW, generation) is False
        assert backend.decisions() == {}

    async def test_unreadable_epoch_skips_the_write(self):
        backend = FailingKeyValueCache()
        cache = ResultCache(backend, namespace="test")

        generation = await cache.generation(7)
        assert generation is None
        assert await cache.set_if_current(7, "users.read", Decision.ALLOW, generation) is False
        assert backend.calls == 1


class TestCacheMetrics:
    def test_concurrent_increments_are_not_lost(self):
        metrics = CacheMetrics()

        def bump():
            for _ in range(1000):
                metrics.incr("hits")

        with ThreadPoolExecutor(max_workers=8) as pool:
            for _ in range(8):
                pool.submit(bump)

        assert metrics.snapshot()["hits"] == 8000

    def test_reset(self):
        metrics = CacheMetrics()
        metrics.incr("misses", 5)
        metrics.reset()
        assert metrics.snapshot()["misses"] == 0
