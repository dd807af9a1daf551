"""Sorted-set index of queued task ids and their processing leases."""

from __future__ import annotations

from typing import Final

from genqueue.domain.task_queue import Priority
from genqueue.ports.ordered_store import OrderedStorePort

SEQUENCE_KEY: Final[str] = "queue:sequence"
RANK_SCORE_SPAN: Final[int] = 10**12
_RECLAIM_BATCH_LIMIT: Final[int] = 100


def queue_key(priority: Priority) -> str:
    return f"queue:{priority.value}"


def lease_key(priority: Priority) -> str:
    return f"queue:{priority.value}:processing"


class PriorityIndex:
    """Queued ids scored so that pop-minimum yields FIFO order per class.

    Scores are ``rank * RANK_SCORE_SPAN + sequence`` where the sequence is a
    store-wide counter, so lower ranks always sort first and ties within a
    rank resolve by insertion order.
    """

    def __init__(self, store: OrderedStorePort) -> None:
        self._store = store

    def push(self, priority: Priority, task_id: str) -> float:
        sequence = self._store.incr(SEQUENCE_KEY)
        score = float(priority.rank * RANK_SCORE_SPAN + sequence)
        self._store.zadd(queue_key(priority), task_id, score)
        return score

    def pop(self, priority: Priority) -> str | None:
        popped = self._store.zpopmin(queue_key(priority))
        return None if popped is None else popped[0]

    def size(self, priority: Priority) -> int:
        return self._store.zcard(queue_key(priority))

    def add_lease(self, priority: Priority, task_id: str, deadline: float) -> None:
        self._store.zadd(lease_key(priority), task_id, deadline)

    def drop_lease(self, priority: Priority, task_id: str) -> bool:
        """Remove a lease; True only for the caller that removed it."""

        return self._store.zrem(lease_key(priority), task_id) == 1

    def expired_leases(
        self, priority: Priority, now: float, limit: int = _RECLAIM_BATCH_LIMIT
    ) -> list[str]:
        return self._store.zrangebyscore(lease_key(priority), now, limit)

    def lease_count(self, priority: Priority) -> int:
        return self._store.zcard(lease_key(priority))


__all__ = [
    "RANK_SCORE_SPAN",
    "SEQUENCE_KEY",
    "PriorityIndex",
    "lease_key",
    "queue_key",
]
