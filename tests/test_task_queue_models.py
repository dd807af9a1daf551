"""Tests for task queue domain models."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from genqueue.domain.task_queue import (
    PRIORITIES_IN_SERVICE_ORDER,
    DeadLetterEntry,
    GenerationPayload,
    Priority,
    QueueTask,
    TaskMetadata,
    TaskTimestamps,
    TaskType,
    dependency_for_type,
    new_task_id,
)
from tests.conftest import make_request, make_task


def test_priority_defaults_apply_when_unset() -> None:
    critical = make_task(priority=Priority.CRITICAL)
    background = make_task(priority=Priority.BACKGROUND)

    assert (critical.max_retries, critical.timeout_ms) == (5, 30_000)
    assert (background.max_retries, background.timeout_ms) == (1, 86_400_000)


def test_explicit_limits_override_priority_defaults() -> None:
    task = make_task(priority=Priority.HIGH, max_retries=0, timeout_ms=1_500)

    assert task.max_retries == 0
    assert task.timeout_ms == 1_500
    assert task.retries_exhausted is True


def test_service_order_is_by_rank() -> None:
    assert PRIORITIES_IN_SERVICE_ORDER == (
        Priority.CRITICAL,
        Priority.HIGH,
        Priority.MEDIUM,
        Priority.LOW,
        Priority.BACKGROUND,
    )
    assert Priority.CRITICAL.rank < Priority.BACKGROUND.rank


def test_retries_above_budget_are_rejected() -> None:
    task = make_task(priority=Priority.LOW)

    with pytest.raises(ValidationError):
        QueueTask.model_validate({**task.model_dump(), "retries": 3})


def test_non_positive_timeout_is_rejected() -> None:
    with pytest.raises(ValidationError):
        make_task(timeout_ms=0)


def test_unknown_schema_version_is_rejected() -> None:
    task = make_task()

    with pytest.raises(ValidationError):
        QueueTask.model_validate_json(
            task.model_copy(update={"schema_version": 2}).model_dump_json()
        )


def test_ttl_seconds_rounds_up() -> None:
    assert make_task(timeout_ms=1_500).ttl_seconds == 2
    assert make_task(timeout_ms=1).ttl_seconds == 1
    assert make_task(timeout_ms=30_000).ttl_seconds == 30


def test_dependency_defaults_to_task_type_mapping() -> None:
    assert dependency_for_type(TaskType.AI_BATCH_PROCESSING) == "ai_generation"
    assert dependency_for_type(TaskType.DATABASE_CLEANUP) == "database_cleanup"
    assert make_task(task_type=TaskType.AI_COVER_GENERATION).dependency == (
        "ai_generation"
    )
    assert make_task(dependency="spotify_api").dependency == "spotify_api"


def test_new_task_id_uses_prefix() -> None:
    first = new_task_id("ai")
    second = new_task_id("ai")

    assert first.startswith("ai_")
    assert first != second
    assert len(first.split("_")) == 3


def test_naive_timestamps_are_treated_as_utc() -> None:
    timestamps = TaskTimestamps(created=datetime(2026, 1, 15, 12, 0))

    assert timestamps.created.tzinfo is not None


def test_payload_round_trips_through_discriminator() -> None:
    task = QueueTask(
        type=TaskType.AI_COVER_GENERATION,
        priority=Priority.CRITICAL,
        payload=GenerationPayload(request=make_request()),
        metadata=TaskMetadata(user_id="user-1"),
    )

    restored = QueueTask.model_validate_json(task.model_dump_json())

    assert isinstance(restored.payload, GenerationPayload)
    assert restored.payload.request.prompt == "neon city skyline"


def test_dead_letter_entry_snapshots_task() -> None:
    task = make_task(priority=Priority.HIGH)

    entry = DeadLetterEntry.from_task(task, reason="boom", stack_trace="trace")

    assert entry.id == task.id
    assert entry.original_queue is Priority.HIGH
    assert entry.failure_reason == "boom"
    assert entry.stack_trace == "trace"
    assert entry.dead_lettered_at.tzinfo is not None
