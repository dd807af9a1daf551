"""AI generation pipeline layered on top of the priority queue.

The orchestrator turns caller requests into queue tasks with a selected
model, scores finished generations, schedules quality-driven retries as their
own queue tasks and reports shared metrics and spend.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Final

from genqueue.config.logging_config import get_logger
from genqueue.domain.ai_pipeline import (
    AIPipelineMetrics,
    AIPipelineRequest,
    AIQueueConfig,
    CostOptimizationReport,
    GenerationResult,
    QualityAssessment,
    SavingsOpportunity,
    UseCase,
)
from genqueue.domain.exceptions import ValidationError
from genqueue.domain.model_catalog import (
    AI_MODELS_REGISTRY,
    AI_QUEUE_CONFIGS,
    LATENT_CONSISTENCY_MODEL_ID,
    SD15_MODEL_ID,
    SDXL_MODEL_ID,
    USE_CASE_PRIORITIES,
)
from genqueue.domain.task_queue import (
    BatchGroup,
    BatchPayload,
    BatchSharedSettings,
    GenerationPayload,
    QualityRetryPayload,
    QueueTask,
    TaskMetadata,
    TaskType,
    new_task_id,
)
from genqueue.observability.metrics import (
    GENERATION_COST_TOTAL,
    GENERATION_QUALITY_SCORE,
    MANUAL_REVIEW_TOTAL,
    QUALITY_RETRIES_TOTAL,
)
from genqueue.ports.task_queue import TaskQueuePort
from genqueue.services.model_selector import ModelSelector
from genqueue.services.pipeline_ledger import LedgerSnapshot, PipelineLedger
from genqueue.services.quality_assessor import QualityAssessor

logger = get_logger(__name__)

PIPELINE_SOURCE: Final[str] = "ai_pipeline"
QUALITY_RETRY_SOURCE: Final[str] = "quality_retry"
BATCH_SOURCE: Final[str] = "batch_optimizer"
BATCH_USER_ID: Final[str] = "system"
DEFAULT_BATCH_PROMPT: Final[str] = "Optimized batch request"

RETRY_USE_CASE: Final[UseCase] = UseCase.INTERACTIVE
RETRY_THRESHOLD_STEP: Final[float] = 10.0
RETRY_THRESHOLD_CAP: Final[float] = 95.0
MANUAL_REVIEW_SCORE: Final[float] = 70.0
BATCH_MS_PER_REQUEST: Final[int] = 60_000

# Share of the relevant spend each optimization is expected to save.
_BULK_ROUTING_RATE: Final[float] = 0.35
_BATCHING_RATE: Final[float] = 0.28
_QUALITY_CACHING_RATE: Final[float] = 0.42
_DOWNGRADE_RATE: Final[float] = 0.19


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class AIPipelineOrchestrator:
    """Submit, assess and account for AI generation work."""

    def __init__(
        self,
        task_queue: TaskQueuePort,
        *,
        selector: ModelSelector,
        assessor: QualityAssessor,
        ledger: PipelineLedger,
        queue_configs: Mapping[UseCase, AIQueueConfig] = AI_QUEUE_CONFIGS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._task_queue = task_queue
        self._selector = selector
        self._assessor = assessor
        self._ledger = ledger
        self._queue_configs = queue_configs
        self._clock = clock or _utcnow

    def submit_ai_task(self, request: AIPipelineRequest) -> str:
        """Select a model for ``request`` and enqueue a generation task."""

        config = self._queue_config(request.use_case)
        suggestion = self._selector.select_best_model(request)

        task = QueueTask(
            id=new_task_id("ai"),
            type=TaskType.AI_COVER_GENERATION,
            priority=USE_CASE_PRIORITIES[request.use_case],
            payload=GenerationPayload(request=request),
            max_retries=config.max_retries,
            timeout_ms=config.timeout_ms,
            metadata=TaskMetadata(
                user_id=request.user_id,
                session_id=request.metadata.session_id or "unknown",
                ip_address=request.metadata.ip_address,
                user_agent=request.metadata.user_agent,
                source=PIPELINE_SOURCE,
                selected_model=suggestion.model_id,
                expected_cost=suggestion.expected_cost,
                quality_threshold=request.quality_threshold,
                details={
                    "use_case": request.use_case.value,
                    "confidence": suggestion.confidence,
                    "fallback": suggestion.fallback,
                    "reasons": suggestion.reasons,
                },
            ),
        )
        task_id = self._task_queue.enqueue(task)

        logger.info(
            "ai_task_submitted",
            task_id=task_id,
            use_case=request.use_case.value,
            priority=task.priority.value,
            model_id=suggestion.model_id,
            expected_cost=suggestion.expected_cost,
            retry_count=request.retry_count,
        )
        return task_id

    def assess_and_handle_quality(
        self, result: GenerationResult, request: AIPipelineRequest
    ) -> QualityAssessment:
        """Score ``result`` and schedule an upgraded retry when it falls short.

        Every assessment is recorded in the ledger. A result under the
        use-case threshold is re-submitted while retries remain; otherwise a
        score at or below the manual review line is flagged.
        """
        config = self._queue_config(request.use_case)
        assessment = self._assessor.assess(result, request)
        score = assessment.overall_score
        met_threshold = score >= config.quality_threshold

        self._ledger.record_generation(
            assessment,
            met_threshold=met_threshold,
            day=self._clock().date(),
            queue_wait_seconds=result.queue_wait_seconds,
            retry_count=request.retry_count,
        )
        GENERATION_COST_TOTAL.labels(model=assessment.metadata.model_used).inc(
            assessment.metadata.cost
        )
        GENERATION_QUALITY_SCORE.labels(use_case=request.use_case.value).observe(score)

        if met_threshold:
            return assessment

        if request.retry_count < config.max_retries:
            improved = self._improve_request(request, score)
            follow_up_id = self._schedule_quality_retry(
                improved, previous_score=score, original_task_id=result.task_id
            )
            QUALITY_RETRIES_TOTAL.labels(use_case=request.use_case.value).inc()
            logger.info(
                "quality_retry_scheduled",
                task_id=result.task_id,
                follow_up_task_id=follow_up_id,
                score=score,
                threshold=config.quality_threshold,
                retry_count=improved.retry_count,
            )
            return assessment.model_copy(update={"follow_up_task_id": follow_up_id})

        if score <= MANUAL_REVIEW_SCORE:
            MANUAL_REVIEW_TOTAL.labels(use_case=request.use_case.value).inc()
            logger.warning(
                "generation_flagged_for_review",
                task_id=result.task_id,
                score=score,
                threshold=config.quality_threshold,
                model_id=assessment.metadata.model_used,
                retry_count=request.retry_count,
            )
        return assessment

    def handle_quality_retry(self, task: QueueTask) -> str:
        """Submit the improved request carried by an ``ai_quality_retry`` task."""

        payload = task.payload
        if not isinstance(payload, QualityRetryPayload):
            raise ValidationError(
                f"Task {task.id} does not carry a quality retry payload"
            )
        return self.submit_ai_task(payload.request)

    def submit_batch(self, requests: Sequence[AIPipelineRequest]) -> str:
        """Group similar requests into one low-priority batch task.

        Raises:
            ValueError: If ``requests`` is empty.
        """
        if not requests:
            msg = "submit_batch requires at least one request"
            raise ValueError(msg)

        config = self._queue_config(UseCase.BATCH)
        batch_id = new_task_id("batch")
        groups = self._build_batch_groups(requests)

        task = QueueTask(
            id=batch_id,
            type=TaskType.AI_BATCH_PROCESSING,
            priority=USE_CASE_PRIORITIES[UseCase.BATCH],
            payload=BatchPayload(
                batch_id=batch_id, requests=list(requests), groups=groups
            ),
            max_retries=config.max_retries,
            timeout_ms=max(config.timeout_ms, len(requests) * BATCH_MS_PER_REQUEST),
            metadata=TaskMetadata(
                user_id=BATCH_USER_ID,
                session_id=batch_id,
                source=BATCH_SOURCE,
                batch_size=len(requests),
            ),
        )
        task_id = self._task_queue.enqueue(task)

        logger.info(
            "ai_batch_submitted",
            batch_id=task_id,
            requests=len(requests),
            groups=len(groups),
            timeout_ms=task.timeout_ms,
        )
        return task_id

    def get_ai_pipeline_metrics(self) -> AIPipelineMetrics:
        snapshot = self._ledger.snapshot()
        generations = snapshot.generations

        return AIPipelineMetrics(
            total_generations=generations,
            average_quality=_safe_div(snapshot.quality_total, generations),
            average_cost=_safe_div(snapshot.cost_total, generations),
            average_generation_time=_safe_div(
                snapshot.generation_time_total, generations
            ),
            success_rate=_safe_div(snapshot.successes, generations),
            queue_wait_time=_safe_div(
                snapshot.queue_wait_total, snapshot.queue_wait_samples
            ),
            cost_per_generation=_safe_div(
                sum(snapshot.daily_cost.values()), len(snapshot.daily_cost)
            ),
            model_utilization=_model_utilization(snapshot),
        )

    def get_cost_optimization_report(self) -> CostOptimizationReport:
        snapshot = self._ledger.snapshot()
        today = self._clock().date()
        month_prefix = today.isoformat()[:7]

        return CostOptimizationReport(
            total_spent_today=snapshot.daily_cost.get(today.isoformat(), 0.0),
            total_spent_mtd=sum(
                cost
                for day, cost in snapshot.daily_cost.items()
                if day.startswith(month_prefix)
            ),
            total_spent_project=sum(snapshot.daily_cost.values()),
            cost_by_model=dict(snapshot.cost_by_model),
            savings_opportunities=_savings_opportunities(snapshot),
            efficiency=self._efficiency_score(snapshot),
        )

    def _queue_config(self, use_case: UseCase) -> AIQueueConfig:
        config = self._queue_configs.get(use_case)
        if config is None:
            raise ValidationError(f"Unknown use case: {use_case}")
        return config

    def _improve_request(
        self, request: AIPipelineRequest, score: float
    ) -> AIPipelineRequest:
        details = {
            **request.metadata.details,
            "quality_retry": True,
            "previous_score": score,
            "previous_retries": request.retry_count,
        }
        return request.model_copy(
            update={
                "use_case": RETRY_USE_CASE,
                "quality_threshold": min(
                    request.quality_threshold + RETRY_THRESHOLD_STEP,
                    RETRY_THRESHOLD_CAP,
                ),
                "retry_count": request.retry_count + 1,
                "metadata": request.metadata.model_copy(update={"details": details}),
            }
        )

    def _schedule_quality_retry(
        self,
        request: AIPipelineRequest,
        *,
        previous_score: float,
        original_task_id: str | None,
    ) -> str:
        task = QueueTask(
            id=new_task_id("retry"),
            type=TaskType.AI_QUALITY_RETRY,
            priority=USE_CASE_PRIORITIES[RETRY_USE_CASE],
            payload=QualityRetryPayload(
                request=request,
                previous_score=previous_score,
                original_task_id=original_task_id,
            ),
            metadata=TaskMetadata(
                user_id=request.user_id,
                session_id=request.metadata.session_id or "unknown",
                source=QUALITY_RETRY_SOURCE,
                quality_threshold=request.quality_threshold,
                details={"original_task_id": original_task_id},
            ),
        )
        return self._task_queue.enqueue(task)

    def _build_batch_groups(
        self, requests: Sequence[AIPipelineRequest]
    ) -> list[BatchGroup]:
        grouped: dict[tuple[float, str], list[AIPipelineRequest]] = {}
        for request in requests:
            key = (request.quality_threshold, request.priority.value)
            grouped.setdefault(key, []).append(request)

        groups: list[BatchGroup] = []
        for members in grouped.values():
            probe = members[0].model_copy(update={"use_case": UseCase.BATCH})
            suggestion = self._selector.select_best_model(probe)
            chunk_size = AI_MODELS_REGISTRY[suggestion.model_id].max_batch_size
            for start in range(0, len(members), chunk_size):
                chunk = members[start : start + chunk_size]
                groups.append(
                    BatchGroup(
                        model_id=suggestion.model_id,
                        requests=chunk,
                        optimized_prompts=[_batch_prompt(item) for item in chunk],
                        shared_settings=BatchSharedSettings(
                            max_quality=max(item.quality_threshold for item in chunk),
                            max_priority=max(
                                (item.priority for item in chunk),
                                key=lambda priority: priority.rank,
                            ).value,
                        ),
                    )
                )
        return groups

    def _efficiency_score(self, snapshot: LedgerSnapshot) -> float:
        """Mean of cost, quality, time and success efficiency on a 0-100 scale."""

        if snapshot.generations == 0:
            return 0.0

        average_cost = snapshot.cost_total / snapshot.generations
        max_base_cost = max(model.base_cost for model in AI_MODELS_REGISTRY.values())
        cost_ratio = min(_safe_div(average_cost, max_base_cost), 1.0)
        cost_efficiency = 100.0 * (1.0 - cost_ratio)

        quality_efficiency = min(snapshot.quality_total / snapshot.generations, 100.0)

        average_time = snapshot.generation_time_total / snapshot.generations
        fastest = min(model.estimated_time for model in AI_MODELS_REGISTRY.values())
        time_efficiency = (
            100.0 if average_time <= 0 else 100.0 * min(fastest / average_time, 1.0)
        )

        success_efficiency = 100.0 * snapshot.successes / snapshot.generations

        score = (
            cost_efficiency + quality_efficiency + time_efficiency + success_efficiency
        ) / 4.0
        return round(score, 2)


def _safe_div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _batch_prompt(request: AIPipelineRequest) -> str:
    prompt = (request.prompt or DEFAULT_BATCH_PROMPT).strip()
    styles = request.metadata.style_preferences
    if styles:
        return f"{prompt}, style: {', '.join(styles)}"
    return prompt


def _model_utilization(snapshot: LedgerSnapshot) -> dict[str, float]:
    total = sum(snapshot.generations_by_model.values())
    return {
        model_id: _safe_div(count, total) * 100.0
        for model_id, count in snapshot.generations_by_model.items()
    }


def _savings_opportunities(snapshot: LedgerSnapshot) -> list[SavingsOpportunity]:
    by_model = snapshot.cost_by_model
    total = sum(by_model.values())
    opportunities: list[SavingsOpportunity] = []

    paid_spend = total - by_model.get(LATENT_CONSISTENCY_MODEL_ID, 0.0)
    if paid_spend > 0:
        opportunities.append(
            SavingsOpportunity(
                opportunity="Use fast model for bulk processing",
                potential_savings=round(paid_spend * _BULK_ROUTING_RATE, 6),
                implementation=(
                    f"Route background tasks to {LATENT_CONSISTENCY_MODEL_ID}"
                ),
            )
        )
    if total > 0:
        opportunities.append(
            SavingsOpportunity(
                opportunity="Batch similar requests",
                potential_savings=round(total * _BATCHING_RATE, 6),
                implementation="Group 4-8 similar prompts per batch",
            )
        )
    if snapshot.retry_cost_total > 0:
        opportunities.append(
            SavingsOpportunity(
                opportunity="Implement quality caching",
                potential_savings=round(
                    snapshot.retry_cost_total * _QUALITY_CACHING_RATE, 6
                ),
                implementation="Cache high-quality outputs for similar requests",
            )
        )
    sdxl_spend = by_model.get(SDXL_MODEL_ID, 0.0)
    if sdxl_spend > 0:
        opportunities.append(
            SavingsOpportunity(
                opportunity="Smart model downgrading",
                potential_savings=round(sdxl_spend * _DOWNGRADE_RATE, 6),
                implementation=(
                    f"Use {SD15_MODEL_ID} for requests that don't need XL quality"
                ),
            )
        )
    return opportunities


__all__ = ["AIPipelineOrchestrator", "MANUAL_REVIEW_SCORE"]
