"""Static registry of backend image models and per-use-case queue policy.

The catalog is immutable and loaded at import time. Costs are expressed per
second of generation; ``AIModel.base_cost`` gives the per-attempt figure.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Final

from genqueue.domain.ai_pipeline import AIModel, AIQueueConfig, ModelSpeed, UseCase
from genqueue.domain.task_queue import Priority

SDXL_MODEL_ID: Final[str] = "stable-diffusion-xl-base-1.0"
SD15_MODEL_ID: Final[str] = "stable-diffusion-1-5"
CONTROLNET_MODEL_ID: Final[str] = "controlnet-openpose"
IPADAPTER_MODEL_ID: Final[str] = "ipadapter"
LATENT_CONSISTENCY_MODEL_ID: Final[str] = "latent-consistency"

_MODELS: tuple[AIModel, ...] = (
    AIModel(
        id=SDXL_MODEL_ID,
        name="Stable Diffusion XL",
        provider="replicate",
        cost=0.000518,
        quality=95.0,
        speed=ModelSpeed.MEDIUM,
        capabilities=("text-to-image", "photorealistic", "detailed", "artistic"),
        max_batch_size=4,
        estimated_time=36.0,
        retry_cost_multiplier=1.5,
        compatibility_score=98.0,
    ),
    AIModel(
        id=SD15_MODEL_ID,
        name="Stable Diffusion 1.5",
        provider="replicate",
        cost=0.000275,
        quality=85.0,
        speed=ModelSpeed.FAST,
        capabilities=("text-to-image", "variations", "style-transfer"),
        max_batch_size=8,
        estimated_time=30.0,
        retry_cost_multiplier=1.3,
        compatibility_score=92.0,
    ),
    AIModel(
        id=CONTROLNET_MODEL_ID,
        name="ControlNet OpenPose",
        provider="replicate",
        cost=0.000768,
        quality=90.0,
        speed=ModelSpeed.SLOW,
        capabilities=(
            "pose-estimation",
            "human-figures",
            "exact-positioning",
            "motion-control",
        ),
        max_batch_size=2,
        estimated_time=60.0,
        retry_cost_multiplier=2.0,
        compatibility_score=96.0,
    ),
    AIModel(
        id=IPADAPTER_MODEL_ID,
        name="IP-Adapter",
        provider="replicate",
        cost=0.00048,
        quality=88.0,
        speed=ModelSpeed.MEDIUM,
        capabilities=(
            "image-to-image",
            "style-preservation",
            "face-preservation",
            "product-identification",
        ),
        max_batch_size=4,
        estimated_time=60.0,
        retry_cost_multiplier=1.8,
        compatibility_score=94.0,
    ),
    AIModel(
        id=LATENT_CONSISTENCY_MODEL_ID,
        name="Latent Consistency",
        provider="replicate",
        cost=0.0,
        quality=70.0,
        speed=ModelSpeed.FAST,
        capabilities=("quick-conversions", "simplified-styles"),
        max_batch_size=12,
        estimated_time=12.0,
        retry_cost_multiplier=1.0,
        compatibility_score=78.0,
    ),
)

AI_MODELS_REGISTRY: Final = MappingProxyType({model.id: model for model in _MODELS})


def _models(*model_ids: str) -> tuple[AIModel, ...]:
    return tuple(AI_MODELS_REGISTRY[model_id] for model_id in model_ids)


AI_QUEUE_CONFIGS: Final = MappingProxyType(
    {
        UseCase.INTERACTIVE: AIQueueConfig(
            use_case=UseCase.INTERACTIVE,
            max_concurrency=5,
            cost_budget=0.20,
            quality_threshold=85.0,
            timeout_ms=120_000,
            max_retries=2,
            models=_models(SDXL_MODEL_ID, CONTROLNET_MODEL_ID, IPADAPTER_MODEL_ID),
            queue_backlog_limit=50,
        ),
        UseCase.BACKGROUND: AIQueueConfig(
            use_case=UseCase.BACKGROUND,
            max_concurrency=20,
            cost_budget=0.08,
            quality_threshold=75.0,
            timeout_ms=300_000,
            max_retries=1,
            models=_models(SD15_MODEL_ID, LATENT_CONSISTENCY_MODEL_ID, SDXL_MODEL_ID),
            queue_backlog_limit=200,
        ),
        UseCase.BATCH: AIQueueConfig(
            use_case=UseCase.BATCH,
            max_concurrency=15,
            cost_budget=0.05,
            quality_threshold=70.0,
            timeout_ms=600_000,
            max_retries=1,
            models=_models(LATENT_CONSISTENCY_MODEL_ID, SD15_MODEL_ID),
            queue_backlog_limit=500,
        ),
        UseCase.SOCIAL: AIQueueConfig(
            use_case=UseCase.SOCIAL,
            max_concurrency=8,
            cost_budget=0.15,
            quality_threshold=80.0,
            timeout_ms=180_000,
            max_retries=2,
            models=_models(SDXL_MODEL_ID, IPADAPTER_MODEL_ID),
            queue_backlog_limit=100,
        ),
    }
)

# Queue class each use case is admitted into.
USE_CASE_PRIORITIES: Final = MappingProxyType(
    {
        UseCase.INTERACTIVE: Priority.CRITICAL,
        UseCase.SOCIAL: Priority.HIGH,
        UseCase.BACKGROUND: Priority.MEDIUM,
        UseCase.BATCH: Priority.LOW,
    }
)


def get_model(model_id: str) -> AIModel | None:
    return AI_MODELS_REGISTRY.get(model_id)


__all__ = [
    "AI_MODELS_REGISTRY",
    "AI_QUEUE_CONFIGS",
    "CONTROLNET_MODEL_ID",
    "IPADAPTER_MODEL_ID",
    "LATENT_CONSISTENCY_MODEL_ID",
    "SD15_MODEL_ID",
    "SDXL_MODEL_ID",
    "USE_CASE_PRIORITIES",
    "get_model",
]
