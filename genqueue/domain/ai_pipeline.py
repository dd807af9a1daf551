"""Domain models for AI generation requests, model routing and reporting."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UseCase(StrEnum):
    """Product use cases that own a queue configuration."""

    INTERACTIVE = "interactive"
    BACKGROUND = "background"
    BATCH = "batch"
    SOCIAL = "social"


class RequestPriority(StrEnum):
    """Caller-declared urgency of a single generation request."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _REQUEST_PRIORITY_RANKS[self]


_REQUEST_PRIORITY_RANKS: dict[RequestPriority, int] = {
    RequestPriority.LOW: 1,
    RequestPriority.MEDIUM: 2,
    RequestPriority.HIGH: 3,
}


class ModelSpeed(StrEnum):
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"


class AIModel(BaseModel):
    """Immutable catalog entry for a backend image model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    provider: str
    cost: float = Field(ge=0.0, description="Currency per second of generation")
    quality: float = Field(ge=0.0, le=100.0)
    speed: ModelSpeed
    capabilities: tuple[str, ...]
    max_batch_size: int = Field(gt=0)
    estimated_time: float = Field(gt=0.0, description="Seconds per generation")
    retry_cost_multiplier: float = Field(ge=0.0)
    compatibility_score: float = Field(ge=0.0, le=100.0)

    @property
    def base_cost(self) -> float:
        """Projected cost of a single attempt."""

        return self.cost * self.estimated_time

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities


class AIQueueConfig(BaseModel):
    """Admission and retry policy for one use case."""

    model_config = ConfigDict(frozen=True)

    use_case: UseCase
    max_concurrency: int = Field(gt=0)
    cost_budget: float = Field(ge=0.0)
    quality_threshold: float = Field(ge=0.0, le=100.0)
    timeout_ms: int = Field(gt=0)
    max_retries: int = Field(ge=0)
    models: tuple[AIModel, ...]
    queue_backlog_limit: int = Field(gt=0)


class Dimensions(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    @property
    def pixels(self) -> int:
        return self.width * self.height


class RequestMetadata(BaseModel):
    """Caller context attached to a generation request."""

    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    original_image_url: str | None = None
    style_preferences: list[str] = Field(default_factory=list)
    target_dimensions: Dimensions | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class AIPipelineRequest(BaseModel):
    """Caller-facing description of an image generation job."""

    user_id: str
    prompt: str | None = None
    image_urls: list[str] = Field(default_factory=list)
    use_case: UseCase
    quality_threshold: float = 85.0
    capabilities: list[str] = Field(default_factory=list)
    priority: RequestPriority = RequestPriority.MEDIUM
    retry_count: int = 0
    metadata: RequestMetadata = Field(default_factory=RequestMetadata)

    @field_validator("quality_threshold")
    @classmethod
    def _validate_threshold(cls, value: float) -> float:
        if not 0.0 <= value <= 100.0:
            msg = "quality_threshold must be within 0..100"
            raise ValueError(msg)
        return value

    @field_validator("retry_count")
    @classmethod
    def _validate_retry_count(cls, value: int) -> int:
        if value < 0:
            msg = "retry_count must be non-negative"
            raise ValueError(msg)
        return value


class SmartSuggestion(BaseModel):
    """Ranked model recommendation returned by the selector."""

    model_id: str
    confidence: float
    reasons: list[str] = Field(default_factory=list)
    expected_cost: float
    expected_quality: float
    estimated_time: float
    fallback: bool = False


class GenerationResult(BaseModel):
    """Output of a worker that executed a generation task."""

    task_id: str | None = None
    image_url: str | None = None
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    processing_time_seconds: float = Field(ge=0.0)
    queue_wait_seconds: float | None = Field(default=None, ge=0.0)
    model_id: str | None = None
    cost: float | None = Field(default=None, ge=0.0)
    content_congruency: float | None = Field(default=None, ge=0.0, le=100.0)
    aesthetic_quality: float | None = Field(default=None, ge=0.0, le=100.0)
    composition_balance: float | None = Field(default=None, ge=0.0, le=100.0)


class AssessmentMetadata(BaseModel):
    resolution: Dimensions
    processing_time: float
    model_used: str
    cost: float


class QualityAssessment(BaseModel):
    """Per-dimension quality scores for a completed generation."""

    resolution_score: float
    content_congruency: float
    aesthetic_quality: float
    composition_balance: float
    overall_score: float
    metadata: AssessmentMetadata
    follow_up_task_id: str | None = None


class AIPipelineMetrics(BaseModel):
    total_generations: int
    average_quality: float
    average_cost: float
    average_generation_time: float
    success_rate: float
    queue_wait_time: float
    cost_per_generation: float
    model_utilization: dict[str, float] = Field(default_factory=dict)


class SavingsOpportunity(BaseModel):
    opportunity: str
    potential_savings: float
    implementation: str


class CostOptimizationReport(BaseModel):
    total_spent_today: float
    total_spent_mtd: float
    total_spent_project: float
    cost_by_model: dict[str, float] = Field(default_factory=dict)
    savings_opportunities: list[SavingsOpportunity] = Field(default_factory=list)
    efficiency: float


__all__ = [
    "AIModel",
    "AIPipelineMetrics",
    "AIPipelineRequest",
    "AIQueueConfig",
    "AssessmentMetadata",
    "CostOptimizationReport",
    "Dimensions",
    "GenerationResult",
    "ModelSpeed",
    "QualityAssessment",
    "RequestMetadata",
    "RequestPriority",
    "SavingsOpportunity",
    "SmartSuggestion",
    "UseCase",
]
