"""Domain models and helpers for task queue operations."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Final, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from genqueue.domain.ai_pipeline import AIPipelineRequest

TASK_SCHEMA_VERSION: Final[int] = 1


class Priority(StrEnum):
    """Queue classes in service order (critical is served first)."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    BACKGROUND = "background"

    @property
    def rank(self) -> int:
        return PRIORITY_RANKS[self]


PRIORITY_RANKS: Final[dict[Priority, int]] = {
    Priority.CRITICAL: 1,
    Priority.HIGH: 2,
    Priority.MEDIUM: 3,
    Priority.LOW: 4,
    Priority.BACKGROUND: 5,
}

PRIORITIES_IN_SERVICE_ORDER: Final[tuple[Priority, ...]] = tuple(
    sorted(Priority, key=lambda item: PRIORITY_RANKS[item])
)


@dataclass(frozen=True, slots=True)
class PriorityConfig:
    """Static limits and defaults for one priority class."""

    capacity: int
    max_retries: int
    timeout_ms: int
    concurrency: int


PRIORITY_CONFIGS: Final[dict[Priority, PriorityConfig]] = {
    Priority.CRITICAL: PriorityConfig(
        capacity=5_000, max_retries=5, timeout_ms=30_000, concurrency=10
    ),
    Priority.HIGH: PriorityConfig(
        capacity=10_000, max_retries=3, timeout_ms=60_000, concurrency=20
    ),
    Priority.MEDIUM: PriorityConfig(
        capacity=25_000, max_retries=3, timeout_ms=300_000, concurrency=50
    ),
    Priority.LOW: PriorityConfig(
        capacity=100_000, max_retries=2, timeout_ms=1_800_000, concurrency=20
    ),
    Priority.BACKGROUND: PriorityConfig(
        capacity=1_000_000, max_retries=1, timeout_ms=86_400_000, concurrency=10
    ),
}


class TaskType(StrEnum):
    """Logical work kinds accepted by the queue."""

    # AI generation
    AI_COVER_GENERATION = "ai_cover_generation"
    AI_BATCH_PROCESSING = "ai_batch_processing"
    AI_QUALITY_RETRY = "ai_quality_retry"
    AI_MUSIC_ANALYSIS = "ai_music_analysis"
    AI_PLAYLIST_CREATION = "ai_playlist_creation"
    # Social
    SOCIAL_NOTIFICATION = "social_notification"
    FRIEND_ACTIVITY_UPDATE = "friend_activity_update"
    TREND_ANALYSIS = "trend_analysis"
    # User management
    USER_ONBOARDING = "user_onboarding"
    PROFILE_UPDATE = "profile_update"
    PREFERENCE_SYNC = "preference_sync"
    # Content processing
    CONTENT_MODERATION = "content_moderation"
    METADATA_EXTRACTION = "metadata_extraction"
    IMAGE_PROCESSING = "image_processing"
    # Analytics
    USAGE_ANALYTICS = "usage_analytics"
    PERFORMANCE_MONITORING = "performance_monitoring"
    CACHE_INVALIDATION = "cache_invalidation"
    # Maintenance
    DATABASE_CLEANUP = "database_cleanup"
    CACHE_WARMING = "cache_warming"
    BACKUP_PROCESSING = "backup_processing"


AI_GENERATION_DEPENDENCY: Final[str] = "ai_generation"


def dependency_for_type(task_type: TaskType) -> str:
    """Return the circuit breaker dependency guarding a task type."""

    if task_type.value.startswith("ai_"):
        return AI_GENERATION_DEPENDENCY
    return task_type.value


def new_task_id(prefix: str = "task") -> str:
    """Generate an opaque, roughly time-ordered task identifier."""

    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def _ensure_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class TaskTimestamps(BaseModel):
    """Lifecycle milestones; each is unset until reached."""

    created: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    queued: datetime | None = None
    processing: datetime | None = None
    completed: datetime | None = None
    failed: datetime | None = None

    @field_validator("created", "queued", "processing", "completed", "failed")
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        return _ensure_utc(value)


class TaskMetadata(BaseModel):
    """Caller identity, origin and diagnostic fields."""

    user_id: str
    session_id: str = "unknown"
    ip_address: str | None = None
    user_agent: str | None = None
    source: str | None = None
    dependency: str | None = None
    selected_model: str | None = None
    expected_cost: float | None = None
    quality_threshold: float | None = None
    batch_size: int | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class GenerationPayload(BaseModel):
    kind: Literal["generation"] = "generation"
    request: AIPipelineRequest


class BatchSharedSettings(BaseModel):
    max_quality: float
    max_priority: str


class BatchGroup(BaseModel):
    """Requests similar enough to share one model and its settings."""

    model_id: str
    requests: list[AIPipelineRequest]
    optimized_prompts: list[str]
    shared_settings: BatchSharedSettings


class BatchPayload(BaseModel):
    kind: Literal["batch"] = "batch"
    batch_id: str
    requests: list[AIPipelineRequest]
    groups: list[BatchGroup]


class QualityRetryPayload(BaseModel):
    kind: Literal["quality_retry"] = "quality_retry"
    request: AIPipelineRequest
    previous_score: float
    original_task_id: str | None = None


class GenericPayload(BaseModel):
    kind: Literal["generic"] = "generic"
    data: dict[str, Any] = Field(default_factory=dict)


TaskPayload = Annotated[
    GenerationPayload | BatchPayload | QualityRetryPayload | GenericPayload,
    Field(discriminator="kind"),
]


class QueueTask(BaseModel):
    """Persisted task record.

    ``max_retries`` and ``timeout_ms`` default to the priority class settings
    when the submitter leaves them unset.
    """

    id: str = Field(default_factory=new_task_id)
    type: TaskType
    priority: Priority
    payload: TaskPayload
    retries: int = 0
    max_retries: int
    timeout_ms: int
    timestamps: TaskTimestamps = Field(default_factory=TaskTimestamps)
    metadata: TaskMetadata
    dependencies: list[str] = Field(default_factory=list)
    schema_version: int = TASK_SCHEMA_VERSION

    @model_validator(mode="before")
    @classmethod
    def _apply_priority_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            priority = Priority(data.get("priority"))
        except ValueError:
            # Field validation reports the invalid priority.
            return data
        config = PRIORITY_CONFIGS[priority]
        defaults: dict[str, Any] = {}
        if data.get("max_retries") is None:
            defaults["max_retries"] = config.max_retries
        if data.get("timeout_ms") is None:
            defaults["timeout_ms"] = config.timeout_ms
        return {**data, **defaults} if defaults else data

    @field_validator("retries", "max_retries")
    @classmethod
    def _validate_non_negative(cls, value: int) -> int:
        if value < 0:
            msg = "retry counters must be non-negative"
            raise ValueError(msg)
        return value

    @field_validator("timeout_ms")
    @classmethod
    def _validate_timeout(cls, value: int) -> int:
        if value <= 0:
            msg = "timeout_ms must be positive"
            raise ValueError(msg)
        return value

    @field_validator("schema_version")
    @classmethod
    def _validate_schema_version(cls, value: int) -> int:
        if value != TASK_SCHEMA_VERSION:
            msg = f"unsupported task schema version: {value}"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _validate_retry_budget(self) -> QueueTask:
        if self.retries > self.max_retries:
            msg = "retries must not exceed max_retries"
            raise ValueError(msg)
        return self

    @property
    def dependency(self) -> str:
        return self.metadata.dependency or dependency_for_type(self.type)

    @property
    def retries_exhausted(self) -> bool:
        return self.retries >= self.max_retries

    @property
    def ttl_seconds(self) -> int:
        return max(1, -(-self.timeout_ms // 1000))


class DeadLetterEntry(QueueTask):
    """Snapshot of a task that exhausted its retries."""

    original_queue: Priority
    failure_reason: str
    stack_trace: str | None = None
    dead_lettered_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @classmethod
    def from_task(
        cls, task: QueueTask, *, reason: str, stack_trace: str | None = None
    ) -> DeadLetterEntry:
        return cls.model_validate(
            {
                **task.model_dump(),
                "original_queue": task.priority,
                "failure_reason": reason,
                "stack_trace": stack_trace,
            }
        )


class QueueStats(BaseModel):
    """Point-in-time statistics for one priority class."""

    name: Priority
    size: int = 0
    pending_tasks: int = 0
    active_workers: int = 0
    in_flight: int = 0
    capacity: int = 0
    utilization: float = 0.0
    processed_today: int = 0
    failed_today: int = 0
    avg_processing_time_ms: float = 0.0
    success_rate: float = 0.0


class HealthReport(BaseModel):
    status: Literal["healthy", "unhealthy"]
    details: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "AI_GENERATION_DEPENDENCY",
    "PRIORITIES_IN_SERVICE_ORDER",
    "PRIORITY_CONFIGS",
    "PRIORITY_RANKS",
    "TASK_SCHEMA_VERSION",
    "BatchGroup",
    "BatchPayload",
    "BatchSharedSettings",
    "DeadLetterEntry",
    "GenerationPayload",
    "GenericPayload",
    "HealthReport",
    "Priority",
    "PriorityConfig",
    "QualityRetryPayload",
    "QueueStats",
    "QueueTask",
    "TaskMetadata",
    "TaskPayload",
    "TaskTimestamps",
    "TaskType",
    "dependency_for_type",
    "new_task_id",
]
