"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from genqueue.adapters.memory_store import InMemoryOrderedStore
from genqueue.config.settings import Settings
from genqueue.domain.ai_pipeline import AIPipelineRequest, UseCase
from genqueue.domain.task_queue import (
    GenericPayload,
    Priority,
    QueueTask,
    TaskMetadata,
    TaskType,
)
from genqueue.services.circuit_breaker import CircuitBreakerRegistry
from genqueue.services.dead_letter_store import DeadLetterStore
from genqueue.use_cases.queue_manager import QueueManager


class FakeClock:
    """Manually advanced clock exposing both datetime and epoch views."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current

    def epoch(self) -> float:
        return self.current.timestamp()

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def make_task(
    *,
    priority: Priority = Priority.MEDIUM,
    task_type: TaskType = TaskType.USAGE_ANALYTICS,
    task_id: str | None = None,
    max_retries: int | None = None,
    timeout_ms: int | None = None,
    dependency: str | None = None,
) -> QueueTask:
    data: dict[str, object] = {
        "type": task_type,
        "priority": priority,
        "payload": GenericPayload(data={"source": "test"}),
        "metadata": TaskMetadata(user_id="user-1", dependency=dependency),
        "max_retries": max_retries,
        "timeout_ms": timeout_ms,
    }
    if task_id is not None:
        data["id"] = task_id
    return QueueTask.model_validate(data)


def make_request(
    *,
    use_case: UseCase = UseCase.INTERACTIVE,
    quality_threshold: float = 85.0,
    capabilities: list[str] | None = None,
    retry_count: int = 0,
    prompt: str | None = "neon city skyline",
) -> AIPipelineRequest:
    return AIPipelineRequest(
        user_id="user-1",
        prompt=prompt,
        use_case=use_case,
        quality_threshold=quality_threshold,
        capabilities=capabilities or [],
        retry_count=retry_count,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryOrderedStore:
    return InMemoryOrderedStore(clock=clock.epoch)


@pytest.fixture
def circuit_breakers(
    store: InMemoryOrderedStore, clock: FakeClock
) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(store, clock=clock.epoch)


@pytest.fixture
def dead_letters(store: InMemoryOrderedStore) -> DeadLetterStore:
    return DeadLetterStore(store)


@pytest.fixture
def queue_manager(
    store: InMemoryOrderedStore,
    circuit_breakers: CircuitBreakerRegistry,
    dead_letters: DeadLetterStore,
    clock: FakeClock,
) -> QueueManager:
    return QueueManager(
        store,
        circuit_breakers=circuit_breakers,
        dead_letters=dead_letters,
        clock=clock.now,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(store_backend="memory")
