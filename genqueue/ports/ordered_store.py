"""Port definition for the shared ordered key-value store."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class OrderedStorePort(Protocol):
    """Minimal Redis-shaped surface required by the queue core.

    Implementations raise ``StoreConnectionError`` when the backend is
    unreachable. ``zpopmin`` must be atomic across concurrent callers.
    """

    def ping(self) -> bool:
        """Return True when the backend answers."""

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store ``value`` under ``key`` with an optional expiry."""

    def get(self, key: str) -> str | None:
        """Return the stored value or None when absent or expired."""

    def delete(self, key: str) -> int:
        """Remove ``key`` and return the number of keys removed."""

    def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set an expiry on an existing key."""

    def incr(self, key: str) -> int:
        """Atomically increment an integer counter and return the new value."""

    def zadd(self, key: str, member: str, score: float) -> None:
        """Insert or rescore ``member`` in a sorted set."""

    def zpopmin(self, key: str) -> tuple[str, float] | None:
        """Atomically remove and return the lowest-scored member."""

    def zrem(self, key: str, member: str) -> int:
        """Remove ``member`` and return 1 if this caller removed it."""

    def zcard(self, key: str) -> int:
        """Return the sorted set cardinality."""

    def zrangebyscore(
        self, key: str, max_score: float, limit: int | None = None
    ) -> list[str]:
        """Return members scored at or below ``max_score`` in score order."""

    def lpush(self, key: str, value: str) -> int:
        """Push ``value`` onto the head of a list and return its length."""

    def ltrim(self, key: str, start: int, stop: int) -> None:
        """Keep only the inclusive ``start``..``stop`` slice of a list."""

    def llen(self, key: str) -> int:
        """Return the list length."""

    def lrange(self, key: str, start: int, stop: int) -> list[str]:
        """Return the inclusive ``start``..``stop`` slice of a list."""

    def sadd(self, key: str, member: str) -> int:
        """Add ``member`` to a set."""

    def srem(self, key: str, member: str) -> int:
        """Remove ``member`` from a set."""

    def scard(self, key: str) -> int:
        """Return the set cardinality."""

    def smembers(self, key: str) -> set[str]:
        """Return every member of a set."""

    def hincrbyfloat(self, key: str, field: str, amount: float) -> float:
        """Increment a hash field by ``amount`` and return the new value."""

    def hgetall(self, key: str) -> dict[str, str]:
        """Return every field of a hash."""


__all__ = ["OrderedStorePort"]
