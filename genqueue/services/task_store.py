"""Persistence of task records and task results in the ordered store."""

from __future__ import annotations

import json
from typing import Any, Final

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from genqueue.domain.exceptions import MalformedTaskError
from genqueue.domain.task_queue import QueueTask
from genqueue.ports.ordered_store import OrderedStorePort

TASK_KEY_PREFIX: Final[str] = "task:"
RESULT_KEY_PREFIX: Final[str] = "result:"


def task_key(task_id: str) -> str:
    return f"{TASK_KEY_PREFIX}{task_id}"


def result_key(task_id: str) -> str:
    return f"{RESULT_KEY_PREFIX}{task_id}"


class TaskStore:
    """Read and write task records keyed by task id."""

    def __init__(self, store: OrderedStorePort) -> None:
        self._store = store

    def save(self, task: QueueTask, ttl_seconds: int) -> None:
        self._store.set(task_key(task.id), task.model_dump_json(), ttl_seconds)

    def load(self, task_id: str) -> QueueTask | None:
        """Return the stored task, None when absent.

        Raises:
            MalformedTaskError: If the record cannot be decoded.
        """
        raw = self._store.get(task_key(task_id))
        if raw is None:
            return None
        try:
            return QueueTask.model_validate_json(raw)
        except PydanticValidationError as exc:
            raise MalformedTaskError(task_id, str(exc)) from exc

    def delete(self, task_id: str) -> None:
        self._store.delete(task_key(task_id))

    def save_result(self, task_id: str, result: Any, ttl_seconds: int) -> None:
        payload = json.dumps(to_jsonable_python(result, fallback=str))
        self._store.set(result_key(task_id), payload, ttl_seconds)

    def load_result(self, task_id: str) -> Any | None:
        raw = self._store.get(result_key(task_id))
        return None if raw is None else json.loads(raw)


__all__ = ["TaskStore", "result_key", "task_key"]
