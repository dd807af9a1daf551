"""Priority task queue built on the shared ordered store.

Tasks are persisted under ``task:{id}`` and indexed in ``queue:{priority}``.
Dequeued tasks hold a lease in ``queue:{priority}:processing`` until they are
completed or failed; expired leases are reclaimed through the normal failure
path so orphaned work is retried or dead-lettered.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Final

from genqueue.config.logging_config import get_logger
from genqueue.domain.exceptions import MalformedTaskError, StoreConnectionError
from genqueue.domain.task_queue import (
    PRIORITIES_IN_SERVICE_ORDER,
    PRIORITY_CONFIGS,
    DeadLetterEntry,
    HealthReport,
    Priority,
    QueueStats,
    QueueTask,
)
from genqueue.observability.metrics import (
    LEASES_RECLAIMED_TOTAL,
    TASK_PROCESSING_SECONDS,
    TASKS_COMPLETED_TOTAL,
    TASKS_ENQUEUED_TOTAL,
    TASKS_FAILED_TOTAL,
)
from genqueue.ports.ordered_store import OrderedStorePort
from genqueue.ports.task_queue import TaskQueuePort
from genqueue.services.circuit_breaker import CircuitBreakerRegistry
from genqueue.services.dead_letter_store import DeadLetterStore
from genqueue.services.priority_index import PriorityIndex
from genqueue.services.task_store import TaskStore

logger = get_logger(__name__)

RESULT_TTL_SECONDS: Final[int] = 86_400
LEASE_GRACE_SECONDS: Final[int] = 60
DAILY_STATS_TTL_SECONDS: Final[int] = 2 * 86_400
LEASE_EXPIRED_REASON: Final[str] = "lease expired"

_PROCESSED_FIELD: Final[str] = "processed"
_FAILED_FIELD: Final[str] = "failed"
_DEAD_LETTERED_FIELD: Final[str] = "dead_lettered"
_PROCESSING_MS_FIELD: Final[str] = "processing_ms_total"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def workers_key(priority: Priority) -> str:
    return f"workers:{priority.value}"


def daily_stats_key(priority: Priority, day: datetime) -> str:
    return f"queue_stats:{priority.value}:{day.date().isoformat()}"


class QueueManager(TaskQueuePort):
    """Enqueue, lease, complete and fail tasks across five priority classes."""

    def __init__(
        self,
        store: OrderedStorePort,
        *,
        circuit_breakers: CircuitBreakerRegistry,
        dead_letters: DeadLetterStore,
        result_ttl_seconds: int = RESULT_TTL_SECONDS,
        lease_grace_seconds: int = LEASE_GRACE_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._tasks = TaskStore(store)
        self._index = PriorityIndex(store)
        self._circuit_breakers = circuit_breakers
        self._dead_letters = dead_letters
        self._result_ttl_seconds = result_ttl_seconds
        self._lease_grace_seconds = lease_grace_seconds
        self._clock = clock or _utcnow

    @property
    def circuit_breakers(self) -> CircuitBreakerRegistry:
        return self._circuit_breakers

    @property
    def dead_letters(self) -> DeadLetterStore:
        return self._dead_letters

    def enqueue(self, task: QueueTask) -> str:
        """Persist ``task`` and append it to its priority queue.

        Raises:
            StoreConnectionError: If the store is unreachable.
        """
        queued = task.model_copy(deep=True)
        queued.timestamps.queued = self._clock()

        self._tasks.save(queued, queued.ttl_seconds)
        self._index.push(queued.priority, queued.id)

        TASKS_ENQUEUED_TOTAL.labels(
            priority=queued.priority.value, task_type=queued.type.value
        ).inc()
        logger.info(
            "task_enqueued",
            task_id=queued.id,
            task_type=queued.type.value,
            priority=queued.priority.value,
            retries=queued.retries,
        )
        return queued.id

    def dequeue(self, priority: Priority) -> QueueTask | None:
        """Pop the oldest task of ``priority`` and lease it; never blocks."""

        task_id = self._index.pop(priority)
        if task_id is None:
            return None

        task = self._load(task_id)
        if task is None:
            return None

        now = self._clock()
        task.timestamps.processing = now
        self._tasks.save(task, task.ttl_seconds + self._lease_grace_seconds)
        deadline = now + timedelta(milliseconds=task.timeout_ms)
        self._index.add_lease(priority, task.id, deadline.timestamp())

        logger.info(
            "task_dequeued",
            task_id=task.id,
            task_type=task.type.value,
            priority=priority.value,
            retries=task.retries,
        )
        return task

    def queue_size(self, priority: Priority) -> int:
        return self._index.size(priority)

    def complete_task(self, task_id: str, result: Any | None = None) -> None:
        """Finish a task; unknown ids are ignored so completion is idempotent."""

        task = self._load(task_id)
        if task is None:
            return

        now = self._clock()
        task.timestamps.completed = now
        if result is not None:
            self._tasks.save_result(task.id, result, self._result_ttl_seconds)
        self._tasks.delete(task.id)
        self._index.drop_lease(task.priority, task.id)

        processing_ms = 0.0
        if task.timestamps.processing is not None:
            processing_ms = max(
                (now - task.timestamps.processing).total_seconds() * 1000.0, 0.0
            )
            TASK_PROCESSING_SECONDS.labels(priority=task.priority.value).observe(
                processing_ms / 1000.0
            )
        self._bump_daily(
            task.priority,
            now,
            {_PROCESSED_FIELD: 1.0, _PROCESSING_MS_FIELD: processing_ms},
        )
        self._circuit_breakers.record_success(task.dependency)

        TASKS_COMPLETED_TOTAL.labels(
            priority=task.priority.value, task_type=task.type.value
        ).inc()
        logger.info(
            "task_completed",
            task_id=task.id,
            task_type=task.type.value,
            priority=task.priority.value,
            processing_ms=round(processing_ms, 2),
        )

    def fail_task(
        self, task_id: str, reason: str, stack_trace: str | None = None
    ) -> None:
        """Retry the task at its priority or dead-letter it when exhausted."""

        task = self._load(task_id)
        if task is None:
            return

        now = self._clock()
        task.timestamps.failed = now
        self._index.drop_lease(task.priority, task.id)

        if not task.retries_exhausted:
            task.retries += 1
            task.timestamps.queued = now
            self._tasks.save(task, task.ttl_seconds)
            self._index.push(task.priority, task.id)
            self._bump_daily(task.priority, now, {_FAILED_FIELD: 1.0})
            TASKS_FAILED_TOTAL.labels(
                priority=task.priority.value,
                task_type=task.type.value,
                outcome="retried",
            ).inc()
            logger.warning(
                "task_retry_scheduled",
                task_id=task.id,
                task_type=task.type.value,
                priority=task.priority.value,
                retries=task.retries,
                max_retries=task.max_retries,
                reason=reason,
            )
        else:
            entry = DeadLetterEntry.from_task(
                task, reason=reason, stack_trace=stack_trace
            )
            self._dead_letters.append(entry)
            self._tasks.delete(task.id)
            self._bump_daily(
                task.priority, now, {_FAILED_FIELD: 1.0, _DEAD_LETTERED_FIELD: 1.0}
            )
            TASKS_FAILED_TOTAL.labels(
                priority=task.priority.value,
                task_type=task.type.value,
                outcome="dead_lettered",
            ).inc()
            logger.error(
                "task_dead_lettered",
                task_id=task.id,
                task_type=task.type.value,
                priority=task.priority.value,
                retries=task.retries,
                reason=reason,
            )

        self._circuit_breakers.record_failure(task.dependency)

    def reclaim_expired_leases(self, now: datetime | None = None) -> list[str]:
        """Fail every task whose lease deadline has passed.

        A lease is claimed by removing it from the lease index; only the
        caller whose removal succeeds routes the task through ``fail_task``.
        """
        current = now or self._clock()
        reclaimed: list[str] = []
        for priority in PRIORITIES_IN_SERVICE_ORDER:
            for task_id in self._index.expired_leases(priority, current.timestamp()):
                if not self._index.drop_lease(priority, task_id):
                    continue
                reclaimed.append(task_id)
                LEASES_RECLAIMED_TOTAL.labels(priority=priority.value).inc()
                logger.warning(
                    "task_lease_expired", task_id=task_id, priority=priority.value
                )
                self.fail_task(task_id, LEASE_EXPIRED_REASON)
        return reclaimed

    def get_queue_stats(self) -> dict[Priority, QueueStats]:
        """Return per-class statistics; a failing class reports zeros."""

        now = self._clock()
        stats: dict[Priority, QueueStats] = {}
        for priority in PRIORITIES_IN_SERVICE_ORDER:
            capacity = PRIORITY_CONFIGS[priority].capacity
            try:
                stats[priority] = self._collect_stats(priority, capacity, now)
            except StoreConnectionError as exc:
                logger.error(
                    "queue_stats_failed", priority=priority.value, error=str(exc)
                )
                stats[priority] = QueueStats(name=priority, capacity=capacity)
        return stats

    def register_worker(self, priority: Priority, worker_id: str) -> None:
        try:
            self._store.sadd(workers_key(priority), worker_id)
        except StoreConnectionError as exc:
            logger.warning(
                "worker_register_failed",
                priority=priority.value,
                worker_id=worker_id,
                error=str(exc),
            )

    def unregister_worker(self, priority: Priority, worker_id: str) -> None:
        try:
            self._store.srem(workers_key(priority), worker_id)
        except StoreConnectionError as exc:
            logger.warning(
                "worker_unregister_failed",
                priority=priority.value,
                worker_id=worker_id,
                error=str(exc),
            )

    def is_circuit_open(self, dependency: str) -> bool:
        return self._circuit_breakers.is_open(dependency)

    def health_check(self) -> HealthReport:
        try:
            self._store.ping()
            stats = self.get_queue_stats()
            breakers = self._circuit_breakers.snapshot()
            dead_letter_size = self._dead_letters.size()
        except StoreConnectionError as exc:
            logger.error("queue_health_check_failed", error=str(exc))
            return HealthReport(status="unhealthy", details={"error": str(exc)})

        return HealthReport(
            status="healthy",
            details={
                "connection": "ok",
                "queue_stats": {
                    priority.value: item.model_dump(mode="json")
                    for priority, item in stats.items()
                },
                "circuit_breakers": {
                    name: state.model_dump(mode="json")
                    for name, state in breakers.items()
                },
                "dead_letter_size": dead_letter_size,
            },
        )

    def _load(self, task_id: str) -> QueueTask | None:
        try:
            task = self._tasks.load(task_id)
        except MalformedTaskError as exc:
            logger.error("task_record_malformed", task_id=task_id, error=str(exc))
            return None
        if task is None:
            logger.warning("task_record_missing", task_id=task_id)
        return task

    def _collect_stats(
        self, priority: Priority, capacity: int, now: datetime
    ) -> QueueStats:
        size = self._index.size(priority)
        in_flight = self._index.lease_count(priority)
        active_workers = self._store.scard(workers_key(priority))
        daily = self._store.hgetall(daily_stats_key(priority, now))

        processed = int(float(daily.get(_PROCESSED_FIELD, 0.0)))
        failed = int(float(daily.get(_FAILED_FIELD, 0.0)))
        processing_ms_total = float(daily.get(_PROCESSING_MS_FIELD, 0.0))
        attempts = processed + failed

        return QueueStats(
            name=priority,
            size=size,
            pending_tasks=size,
            active_workers=active_workers,
            in_flight=in_flight,
            capacity=capacity,
            utilization=size / capacity if capacity else 0.0,
            processed_today=processed,
            failed_today=failed,
            avg_processing_time_ms=(
                processing_ms_total / processed if processed else 0.0
            ),
            success_rate=processed / attempts if attempts else 0.0,
        )

    def _bump_daily(
        self, priority: Priority, now: datetime, increments: dict[str, float]
    ) -> None:
        key = daily_stats_key(priority, now)
        for field, amount in increments.items():
            self._store.hincrbyfloat(key, field, amount)
        self._store.expire(key, DAILY_STATS_TTL_SECONDS)


__all__ = [
    "DAILY_STATS_TTL_SECONDS",
    "LEASE_EXPIRED_REASON",
    "QueueManager",
    "daily_stats_key",
    "workers_key",
]
