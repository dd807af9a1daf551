"""In-process implementation of the ordered store port.

Mirrors the Redis semantics the queue core relies on (sorted-set ordering by
score then member, list trimming with negative indices, per-key expiry) so a
single process can run the full queue without a Redis server.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from collections.abc import Callable

from genqueue.config.logging_config import get_logger
from genqueue.ports.ordered_store import OrderedStorePort

logger = get_logger(__name__)


def _normalize_range(length: int, start: int, stop: int) -> tuple[int, int]:
    if start < 0:
        start = max(length + start, 0)
    if stop < 0:
        stop = length + stop
    return start, min(stop, length - 1)


class InMemoryOrderedStore(OrderedStorePort):
    """Thread-safe local store with TTL support driven by ``clock``."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time
        self._lock = threading.RLock()
        self._strings: dict[str, str] = {}
        self._sorted_sets: dict[str, dict[str, float]] = defaultdict(dict)
        self._lists: dict[str, list[str]] = defaultdict(list)
        self._sets: dict[str, set[str]] = defaultdict(set)
        self._hashes: dict[str, dict[str, str]] = defaultdict(dict)
        self._expires_at: dict[str, float] = {}
        logger.info("memory_store_initialized")

    def _purge_if_expired(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._remove(key)

    def _remove(self, key: str) -> int:
        removed = 0
        for container in (
            self._strings,
            self._sorted_sets,
            self._lists,
            self._sets,
            self._hashes,
        ):
            if key in container:
                del container[key]
                removed = 1
        self._expires_at.pop(key, None)
        return removed

    def _exists(self, key: str) -> bool:
        return (
            key in self._strings
            or bool(self._sorted_sets.get(key))
            or bool(self._lists.get(key))
            or bool(self._sets.get(key))
            or bool(self._hashes.get(key))
        )

    def _drop_if_empty(self, key: str) -> None:
        if not self._exists(key):
            self._remove(key)

    def ping(self) -> bool:
        return True

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        with self._lock:
            self._remove(key)
            self._strings[key] = value
            if ttl_seconds is not None:
                self._expires_at[key] = self._clock() + ttl_seconds

    def get(self, key: str) -> str | None:
        with self._lock:
            self._purge_if_expired(key)
            return self._strings.get(key)

    def delete(self, key: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            return self._remove(key)

    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            self._purge_if_expired(key)
            if not self._exists(key):
                return False
            self._expires_at[key] = self._clock() + ttl_seconds
            return True

    def incr(self, key: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            current = int(self._strings.get(key, "0"))
            current += 1
            self._strings[key] = str(current)
            return current

    def zadd(self, key: str, member: str, score: float) -> None:
        with self._lock:
            self._purge_if_expired(key)
            self._sorted_sets[key][member] = float(score)

    def zpopmin(self, key: str) -> tuple[str, float] | None:
        with self._lock:
            self._purge_if_expired(key)
            members = self._sorted_sets.get(key)
            if not members:
                return None
            member, score = min(members.items(), key=lambda item: (item[1], item[0]))
            del members[member]
            self._drop_if_empty(key)
            return member, score

    def zrem(self, key: str, member: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            members = self._sorted_sets.get(key)
            if not members or member not in members:
                return 0
            del members[member]
            self._drop_if_empty(key)
            return 1

    def zcard(self, key: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            return len(self._sorted_sets.get(key, {}))

    def zrangebyscore(
        self, key: str, max_score: float, limit: int | None = None
    ) -> list[str]:
        with self._lock:
            self._purge_if_expired(key)
            candidates = self._sorted_sets.get(key, {}).items()
            ordered = sorted(
                (item for item in candidates if item[1] <= max_score),
                key=lambda item: (item[1], item[0]),
            )
            members = [member for member, _ in ordered]
            return members if limit is None else members[:limit]

    def lpush(self, key: str, value: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            items = self._lists[key]
            items.insert(0, value)
            return len(items)

    def ltrim(self, key: str, start: int, stop: int) -> None:
        with self._lock:
            self._purge_if_expired(key)
            items = self._lists.get(key)
            if not items:
                return
            first, last = _normalize_range(len(items), start, stop)
            self._lists[key] = items[first : last + 1] if first <= last else []
            self._drop_if_empty(key)

    def llen(self, key: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            return len(self._lists.get(key, []))

    def lrange(self, key: str, start: int, stop: int) -> list[str]:
        with self._lock:
            self._purge_if_expired(key)
            items = self._lists.get(key, [])
            first, last = _normalize_range(len(items), start, stop)
            return list(items[first : last + 1]) if first <= last else []

    def sadd(self, key: str, member: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            members = self._sets[key]
            if member in members:
                return 0
            members.add(member)
            return 1

    def srem(self, key: str, member: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            members = self._sets.get(key)
            if not members or member not in members:
                return 0
            members.discard(member)
            self._drop_if_empty(key)
            return 1

    def scard(self, key: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            return len(self._sets.get(key, set()))

    def smembers(self, key: str) -> set[str]:
        with self._lock:
            self._purge_if_expired(key)
            return set(self._sets.get(key, set()))

    def hincrbyfloat(self, key: str, field: str, amount: float) -> float:
        with self._lock:
            self._purge_if_expired(key)
            fields = self._hashes[key]
            value = float(fields.get(field, "0")) + amount
            fields[field] = repr(value)
            return value

    def hgetall(self, key: str) -> dict[str, str]:
        with self._lock:
            self._purge_if_expired(key)
            return dict(self._hashes.get(key, {}))


__all__ = ["InMemoryOrderedStore"]
