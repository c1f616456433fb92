"""
Tests for the bounded TTL permission cache.
"""
import threading

import pytest

from tenant_rbac.features.permissions.cache import PermissionCache, invalidate_caches
from tests.conftest import FakeClock


def test_get_returns_value_within_ttl(cache, clock):
    cache.set("m1:app1", "value")
    clock.advance(59.9)
    assert cache.get("m1:app1") == "value"


def test_expired_entry_is_a_miss_and_removed(cache, clock):
    cache.set("m1:app1", "value")
    clock.advance(60)
    assert cache.get("m1:app1") is None
    assert len(cache) == 0


def test_missing_key_is_a_miss(cache):
    assert cache.get("nobody:nothing") is None


def test_capacity_evicts_oldest_inserted_first():
    clock = FakeClock()
    cache = PermissionCache(ttl_seconds=60, max_entries=3, clock=clock)
    for i in range(3):
        cache.set(f"m{i}:app", i)
    cache.get("m0:app")  # reads do not refresh insertion order
    cache.set("m3:app", 3)

    assert len(cache) == 3
    assert cache.get("m0:app") is None
    assert [cache.get(f"m{i}:app") for i in (1, 2, 3)] == [1, 2, 3]


def test_overwrite_moves_entry_to_newest():
    cache = PermissionCache(ttl_seconds=60, max_entries=2, clock=FakeClock())
    cache.set("a:app", 1)
    cache.set("b:app", 2)
    cache.set("a:app", 10)
    cache.set("c:app", 3)

    assert cache.get("a:app") == 10
    assert cache.get("b:app") is None


def test_overwrite_restarts_ttl(cache, clock):
    cache.set("m1:app1", "old")
    clock.advance(50)
    cache.set("m1:app1", "new")
    clock.advance(50)
    assert cache.get("m1:app1") == "new"


def test_invalid_capacity_rejected():
    with pytest.raises(ValueError):
        PermissionCache(max_entries=0)


def test_key_joins_parts():
    assert PermissionCache.key("m1", "app1") == "m1:app1"
    assert PermissionCache.key("m1", "app1", "invoices", "approve") == "m1:app1:invoices:approve"


def test_invalidate_by_member(cache):
    cache.set("m1:app1", 1)
    cache.set("m1:app2", 2)
    cache.set("m2:app1", 3)

    assert cache.invalidate(member_id="m1") == 2
    assert "m2:app1" in cache
    assert "m1:app1" not in cache


def test_invalidate_by_application_covers_check_keys(cache):
    cache.set("m1:app1", 1)
    cache.set("m2:app1:invoices:approve", True)
    cache.set("m1:app2", 2)

    assert cache.invalidate(application_id="app1") == 2
    assert len(cache) == 1


def test_invalidate_member_and_application(cache):
    cache.set("m1:app1", 1)
    cache.set("m1:app2", 2)
    cache.set("m2:app1", 3)

    assert cache.invalidate(member_id="m1", application_id="app1") == 1
    assert len(cache) == 2


def test_invalidate_matches_ids_containing_separator(cache):
    member_id = "org1:m9"
    cache.set(PermissionCache.key(member_id, "app1"), 1, member_id=member_id, application_id="app1")
    cache.set(
        PermissionCache.key(member_id, "app1", "invoices", "read"), True,
        member_id=member_id, application_id="app1",
    )
    cache.set("org1:app1", 2)

    assert cache.invalidate(member_id=member_id, application_id="app1") == 2
    assert "org1:app1" in cache


def test_invalidate_without_filter_is_noop(cache):
    cache.set("m1:app1", 1)
    assert cache.invalidate() == 0
    assert len(cache) == 1


def test_invalidate_caches_sums_across_caches(cache, check_cache):
    cache.set("m1:app1", 1)
    check_cache.set("m1:app1:invoices:read", True)
    check_cache.set("m1:app1:invoices:approve", False)

    assert invalidate_caches((cache, check_cache), member_id="m1") == 3


def test_clear(cache):
    cache.set("m1:app1", 1)
    cache.clear()
    assert len(cache) == 0


def test_concurrent_writers_never_exceed_capacity():
    cache = PermissionCache(ttl_seconds=60, max_entries=50)
    errors = []

    def worker(n):
        try:
            for i in range(500):
                key = f"m{n}:app{i}"
                cache.set(key, i)
                value = cache.get(key)
                assert value is None or value == i
                assert len(cache) <= 50
        except AssertionError as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(cache) == 50
