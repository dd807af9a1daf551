"""Helpers for correlation identifiers in logs."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

from genqueue.config.logging_config import bind_context, unbind_context

CORRELATION_ID_KEY = "correlation_id"


@contextmanager
def task_scope(task_id: str, correlation_id: str | None = None) -> Iterator[str]:
    """Bind the task id and a correlation id while a task is processed."""

    resolved_id = correlation_id or str(uuid4())
    bind_context(**{CORRELATION_ID_KEY: resolved_id, "task_id": task_id})
    try:
        yield resolved_id
    finally:
        unbind_context(CORRELATION_ID_KEY, "task_id")


__all__ = ["CORRELATION_ID_KEY", "task_scope"]
