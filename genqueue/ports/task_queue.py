"""Port definition for priority task queue backends."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from genqueue.domain.task_queue import HealthReport, Priority, QueueStats, QueueTask


@runtime_checkable
class TaskQueuePort(Protocol):
    """Abstract interface implemented by the queue manager."""

    def enqueue(self, task: QueueTask) -> str:
        """Persist and index a task, returning its id."""

    def dequeue(self, priority: Priority) -> QueueTask | None:
        """Pop the next task of ``priority`` without blocking."""

    def queue_size(self, priority: Priority) -> int:
        """Return how many task ids are waiting in ``priority``."""

    def complete_task(self, task_id: str, result: Any | None = None) -> None:
        """Mark a task as completed and store its result."""

    def fail_task(
        self, task_id: str, reason: str, stack_trace: str | None = None
    ) -> None:
        """Record a failure and retry or dead-letter the task."""

    def reclaim_expired_leases(self, now: datetime | None = None) -> list[str]:
        """Fail tasks whose processing lease has expired."""

    def get_queue_stats(self) -> dict[Priority, QueueStats]:
        """Return statistics for every priority class."""

    def register_worker(self, priority: Priority, worker_id: str) -> None:
        """Record an active worker for ``priority``."""

    def unregister_worker(self, priority: Priority, worker_id: str) -> None:
        """Remove an active worker record."""

    def is_circuit_open(self, dependency: str) -> bool:
        """Return True when callers should skip ``dependency``."""

    def health_check(self) -> HealthReport:
        """Probe the backing store and summarise queue health."""


__all__ = ["TaskQueuePort"]
