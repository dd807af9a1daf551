"""Tests for the in-process ordered store."""

from __future__ import annotations

from genqueue.adapters.memory_store import InMemoryOrderedStore
from tests.conftest import FakeClock


def test_set_with_ttl_expires_value(store: InMemoryOrderedStore, clock: FakeClock) -> None:
    store.set("task:1", "payload", ttl_seconds=30)

    clock.advance(29)
    assert store.get("task:1") == "payload"

    clock.advance(1)
    assert store.get("task:1") is None


def test_set_without_ttl_clears_previous_expiry(
    store: InMemoryOrderedStore, clock: FakeClock
) -> None:
    store.set("key", "first", ttl_seconds=5)
    store.set("key", "second")

    clock.advance(10)

    assert store.get("key") == "second"


def test_expire_applies_to_hashes(store: InMemoryOrderedStore, clock: FakeClock) -> None:
    store.hincrbyfloat("stats", "processed", 1.0)

    assert store.expire("stats", 60) is True
    assert store.expire("missing", 60) is False

    clock.advance(61)
    assert store.hgetall("stats") == {}


def test_incr_starts_from_zero(store: InMemoryOrderedStore) -> None:
    assert store.incr("counter") == 1
    assert store.incr("counter") == 2
    assert store.get("counter") == "2"


def test_zpopmin_returns_lowest_score_then_member(store: InMemoryOrderedStore) -> None:
    store.zadd("queue", "b", 2.0)
    store.zadd("queue", "a", 2.0)
    store.zadd("queue", "c", 1.0)

    assert store.zpopmin("queue") == ("c", 1.0)
    assert store.zpopmin("queue") == ("a", 2.0)
    assert store.zpopmin("queue") == ("b", 2.0)
    assert store.zpopmin("queue") is None
    assert store.zcard("queue") == 0


def test_zrem_reports_single_removal(store: InMemoryOrderedStore) -> None:
    store.zadd("leases", "task-1", 10.0)

    assert store.zrem("leases", "task-1") == 1
    assert store.zrem("leases", "task-1") == 0


def test_zrangebyscore_filters_and_limits(store: InMemoryOrderedStore) -> None:
    for index, score in enumerate([5.0, 1.0, 3.0, 9.0]):
        store.zadd("leases", f"task-{index}", score)

    assert store.zrangebyscore("leases", 5.0) == ["task-1", "task-2", "task-0"]
    assert store.zrangebyscore("leases", 5.0, limit=2) == ["task-1", "task-2"]
    assert store.zrangebyscore("leases", 0.5) == []


def test_lists_push_to_head_and_trim_with_negative_indices(
    store: InMemoryOrderedStore,
) -> None:
    for value in ["one", "two", "three", "four"]:
        store.lpush("letters", value)

    assert store.lrange("letters", 0, -1) == ["four", "three", "two", "one"]

    store.ltrim("letters", 0, -2)
    assert store.lrange("letters", 0, -1) == ["four", "three", "two"]

    store.ltrim("letters", 0, 0)
    assert store.llen("letters") == 1
    assert store.lrange("letters", 0, 10) == ["four"]


def test_ltrim_with_empty_range_removes_list(store: InMemoryOrderedStore) -> None:
    store.lpush("letters", "a")

    store.ltrim("letters", 5, 10)

    assert store.llen("letters") == 0


def test_set_membership(store: InMemoryOrderedStore) -> None:
    assert store.sadd("workers:high", "w1") == 1
    assert store.sadd("workers:high", "w1") == 0
    store.sadd("workers:high", "w2")

    assert store.scard("workers:high") == 2
    assert store.smembers("workers:high") == {"w1", "w2"}
    assert store.srem("workers:high", "w1") == 1
    assert store.srem("workers:high", "missing") == 0
    assert store.smembers("workers:high") == {"w2"}


def test_hincrbyfloat_accumulates(store: InMemoryOrderedStore) -> None:
    store.hincrbyfloat("ledger", "cost", 0.25)
    total = store.hincrbyfloat("ledger", "cost", 0.5)

    assert total == 0.75
    assert float(store.hgetall("ledger")["cost"]) == 0.75


def test_delete_reports_removed_keys(store: InMemoryOrderedStore) -> None:
    store.set("key", "value")

    assert store.delete("key") == 1
    assert store.delete("key") == 0
    assert store.ping() is True
