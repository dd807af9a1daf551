"""Queue workers that execute tasks by type."""

from __future__ import annotations

import socket
import traceback
from collections.abc import Mapping, Sequence
from typing import Any, Final, Protocol
from uuid import uuid4

from genqueue.config.logging_config import get_logger
from genqueue.domain.task_queue import (
    PRIORITIES_IN_SERVICE_ORDER,
    Priority,
    QueueTask,
    TaskType,
)
from genqueue.observability.tracing import task_scope
from genqueue.ports.task_queue import TaskQueuePort

logger = get_logger(__name__)

_DEFAULT_BATCH_SIZE: Final[int] = 8


class TaskHandler(Protocol):
    """Callable that executes one task and returns its result."""

    def __call__(self, task: QueueTask) -> Any: ...


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{uuid4().hex[:8]}"


class QueueWorker:
    """Drain priority queues highest first and dispatch tasks to handlers.

    Each pull restarts from the most urgent priority, so a critical task
    enqueued mid-batch is served before remaining lower-priority work.
    """

    def __init__(
        self,
        *,
        task_queue: TaskQueuePort,
        handlers: Mapping[TaskType, TaskHandler],
        worker_id: str | None = None,
        priorities: Sequence[Priority] = PRIORITIES_IN_SERVICE_ORDER,
        dependency: str | None = None,
        batch_size: int = _DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            msg = "batch_size must be positive"
            raise ValueError(msg)
        if not priorities:
            msg = "priorities must not be empty"
            raise ValueError(msg)

        self._task_queue = task_queue
        self._handlers = dict(handlers)
        self._worker_id = worker_id or default_worker_id()
        self._priorities = sorted(set(priorities), key=lambda item: item.rank)
        self._dependency = dependency
        self._batch_size = batch_size

    @property
    def worker_id(self) -> str:
        return self._worker_id

    def register(self) -> None:
        for priority in self._priorities:
            self._task_queue.register_worker(priority, self._worker_id)
        logger.info(
            "worker_registered",
            worker_id=self._worker_id,
            priorities=[priority.value for priority in self._priorities],
        )

    def unregister(self) -> None:
        for priority in self._priorities:
            self._task_queue.unregister_worker(priority, self._worker_id)
        logger.info("worker_unregistered", worker_id=self._worker_id)

    def reclaim_expired_leases(self) -> int:
        """Route tasks whose lease deadline passed back through failure."""

        reclaimed = self._task_queue.reclaim_expired_leases()
        if reclaimed:
            logger.info(
                "worker_leases_reclaimed",
                worker_id=self._worker_id,
                count=len(reclaimed),
            )
        return len(reclaimed)

    def process_available_tasks(self) -> int:
        """Run up to ``batch_size`` tasks unless the dependency circuit is open."""

        if self._dependency and self._task_queue.is_circuit_open(self._dependency):
            logger.warning(
                "worker_circuit_open",
                worker_id=self._worker_id,
                dependency=self._dependency,
            )
            return 0

        processed = 0
        while processed < self._batch_size:
            task = self._next_task()
            if task is None:
                break
            self._run(task)
            processed += 1
        return processed

    def _next_task(self) -> QueueTask | None:
        for priority in self._priorities:
            # A stale id yields None while newer ids may still be waiting.
            while True:
                task = self._task_queue.dequeue(priority)
                if task is not None:
                    return task
                if self._task_queue.queue_size(priority) == 0:
                    break
        return None

    def _run(self, task: QueueTask) -> None:
        with task_scope(task.id):
            handler = self._handlers.get(task.type)
            if handler is None:
                reason = f"no handler registered for task type {task.type.value}"
                logger.error(
                    "worker_handler_missing",
                    task_type=task.type.value,
                    worker_id=self._worker_id,
                )
                self._task_queue.fail_task(task.id, reason)
                return

            logger.info(
                "worker_task_started",
                task_type=task.type.value,
                priority=task.priority.value,
                retries=task.retries,
                worker_id=self._worker_id,
            )
            try:
                result = handler(task)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "worker_task_failed",
                    task_type=task.type.value,
                    worker_id=self._worker_id,
                )
                self._task_queue.fail_task(
                    task.id,
                    f"{type(exc).__name__}: {exc}",
                    traceback.format_exc(),
                )
            else:
                self._task_queue.complete_task(task.id, result)
                logger.info(
                    "worker_task_completed",
                    task_type=task.type.value,
                    worker_id=self._worker_id,
                )


__all__ = ["QueueWorker", "TaskHandler", "default_worker_id"]
