"""Factories to compose the queue core and worker task handlers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from genqueue.adapters.store_factory import create_store
from genqueue.config.settings import Settings
from genqueue.domain.ai_pipeline import AIPipelineRequest, GenerationResult
from genqueue.domain.exceptions import ValidationError
from genqueue.domain.task_queue import (
    BatchPayload,
    GenerationPayload,
    QueueTask,
    TaskType,
)
from genqueue.ports.image_generator import ImageGeneratorPort
from genqueue.ports.ordered_store import OrderedStorePort
from genqueue.services.circuit_breaker import CircuitBreakerRegistry
from genqueue.services.dead_letter_store import DeadLetterStore
from genqueue.services.model_selector import ModelSelector
from genqueue.services.pipeline_ledger import PipelineLedger
from genqueue.services.quality_assessor import QualityAssessor
from genqueue.use_cases.pipeline_orchestrator import AIPipelineOrchestrator
from genqueue.use_cases.queue_manager import QueueManager
from genqueue.workers.pipeline import TaskHandler


@dataclass(frozen=True, slots=True)
class QueueContext:
    """Wired queue components sharing one ordered store."""

    settings: Settings
    store: OrderedStorePort
    queue_manager: QueueManager
    orchestrator: AIPipelineOrchestrator


def build_queue_context(
    settings: Settings,
    *,
    store: OrderedStorePort | None = None,
    clock: Callable[[], datetime] | None = None,
    epoch_clock: Callable[[], float] | None = None,
) -> QueueContext:
    """Compose the queue manager and orchestrator from settings."""

    resolved_store = store or create_store(settings)
    circuit_breakers = CircuitBreakerRegistry(
        resolved_store,
        failure_threshold=settings.circuit_failure_threshold,
        timeout_seconds=settings.circuit_timeout_seconds,
        success_threshold=settings.circuit_success_threshold,
        clock=epoch_clock,
    )
    dead_letters = DeadLetterStore(
        resolved_store,
        max_entries=settings.dead_letter_max_entries,
        trim_to=settings.dead_letter_trim_to,
    )
    queue_manager = QueueManager(
        resolved_store,
        circuit_breakers=circuit_breakers,
        dead_letters=dead_letters,
        result_ttl_seconds=settings.result_ttl_seconds,
        lease_grace_seconds=settings.lease_grace_seconds,
        clock=clock,
    )
    orchestrator = AIPipelineOrchestrator(
        queue_manager,
        selector=ModelSelector(),
        assessor=QualityAssessor(),
        ledger=PipelineLedger(resolved_store),
        clock=clock,
    )
    return QueueContext(
        settings=settings,
        store=resolved_store,
        queue_manager=queue_manager,
        orchestrator=orchestrator,
    )


def _with_queue_wait(result: GenerationResult, task: QueueTask) -> GenerationResult:
    updates: dict[str, Any] = {"task_id": result.task_id or task.id}
    queued = task.timestamps.queued
    processing = task.timestamps.processing
    if result.queue_wait_seconds is None and queued and processing:
        updates["queue_wait_seconds"] = max(
            (processing - queued).total_seconds(), 0.0
        )
    return result.model_copy(update=updates)


def _generate(
    generator: ImageGeneratorPort,
    *,
    model_id: str,
    prompt: str | None,
    request: AIPipelineRequest,
    task: QueueTask,
) -> GenerationResult:
    result = generator.generate(model_id=model_id, prompt=prompt, request=request)
    if result.model_id is None:
        result = result.model_copy(update={"model_id": model_id})
    return _with_queue_wait(result, task)


def create_generation_handler(
    *, orchestrator: AIPipelineOrchestrator, generator: ImageGeneratorPort
) -> TaskHandler:
    """Build the handler for ``ai_cover_generation`` tasks."""

    def handle(task: QueueTask) -> Any:
        payload = task.payload
        if not isinstance(payload, GenerationPayload):
            raise ValidationError(f"Task {task.id} does not carry a generation payload")
        model_id = task.metadata.selected_model
        if not model_id:
            raise ValidationError(f"Task {task.id} has no selected model")

        result = _generate(
            generator,
            model_id=model_id,
            prompt=payload.request.prompt,
            request=payload.request,
            task=task,
        )
        assessment = orchestrator.assess_and_handle_quality(result, payload.request)
        return assessment.model_dump(mode="json")

    return handle


def create_batch_handler(
    *, orchestrator: AIPipelineOrchestrator, generator: ImageGeneratorPort
) -> TaskHandler:
    """Build the handler for ``ai_batch_processing`` tasks."""

    def handle(task: QueueTask) -> Any:
        payload = task.payload
        if not isinstance(payload, BatchPayload):
            raise ValidationError(f"Task {task.id} does not carry a batch payload")

        assessments: list[dict[str, Any]] = []
        for group in payload.groups:
            for request, prompt in zip(
                group.requests, group.optimized_prompts, strict=True
            ):
                result = _generate(
                    generator,
                    model_id=group.model_id,
                    prompt=prompt,
                    request=request,
                    task=task,
                )
                assessment = orchestrator.assess_and_handle_quality(result, request)
                assessments.append(assessment.model_dump(mode="json"))
        return {"batch_id": payload.batch_id, "assessments": assessments}

    return handle


def create_quality_retry_handler(
    *, orchestrator: AIPipelineOrchestrator
) -> TaskHandler:
    """Build the handler for ``ai_quality_retry`` tasks."""

    def handle(task: QueueTask) -> Any:
        return {"submitted_task_id": orchestrator.handle_quality_retry(task)}

    return handle


def create_ai_task_handlers(
    *, orchestrator: AIPipelineOrchestrator, generator: ImageGeneratorPort
) -> dict[TaskType, TaskHandler]:
    """Handlers for every AI task type the orchestrator produces."""

    return {
        TaskType.AI_COVER_GENERATION: create_generation_handler(
            orchestrator=orchestrator, generator=generator
        ),
        TaskType.AI_BATCH_PROCESSING: create_batch_handler(
            orchestrator=orchestrator, generator=generator
        ),
        TaskType.AI_QUALITY_RETRY: create_quality_retry_handler(
            orchestrator=orchestrator
        ),
    }


__all__ = [
    "QueueContext",
    "build_queue_context",
    "create_ai_task_handlers",
    "create_batch_handler",
    "create_generation_handler",
    "create_quality_retry_handler",
]
