"""Deterministic quality scoring for completed generations."""

from __future__ import annotations

from collections.abc import Mapping
from statistics import fmean
from typing import Final

from genqueue.domain.ai_pipeline import (
    AIModel,
    AIPipelineRequest,
    AssessmentMetadata,
    Dimensions,
    GenerationResult,
    QualityAssessment,
)
from genqueue.domain.model_catalog import AI_MODELS_REGISTRY

DEFAULT_TARGET_DIMENSIONS: Final[Dimensions] = Dimensions(width=1024, height=1024)
UNKNOWN_MODEL_QUALITY: Final[float] = 75.0
UNKNOWN_MODEL_ID: Final[str] = "unknown"


class QualityAssessor:
    """Score a generation on resolution and three perceptual dimensions.

    Perceptual scores reported by the worker are used as-is; a missing score
    falls back to the producing model's catalog quality.
    """

    def __init__(self, models: Mapping[str, AIModel] = AI_MODELS_REGISTRY) -> None:
        self._models = models

    def assess(
        self, result: GenerationResult, request: AIPipelineRequest
    ) -> QualityAssessment:
        model = self._models.get(result.model_id) if result.model_id else None
        baseline = model.quality if model else UNKNOWN_MODEL_QUALITY

        target = request.metadata.target_dimensions or DEFAULT_TARGET_DIMENSIONS
        resolution = Dimensions(width=result.width, height=result.height)
        resolution_score = min(100.0, resolution.pixels / target.pixels * 100.0)

        content = _or_default(result.content_congruency, baseline)
        aesthetic = _or_default(result.aesthetic_quality, baseline)
        composition = _or_default(result.composition_balance, baseline)
        overall = fmean((resolution_score, content, aesthetic, composition))

        if result.cost is not None:
            cost = result.cost
        else:
            cost = model.base_cost if model else 0.0

        return QualityAssessment(
            resolution_score=round(resolution_score, 2),
            content_congruency=content,
            aesthetic_quality=aesthetic,
            composition_balance=composition,
            overall_score=round(overall, 2),
            metadata=AssessmentMetadata(
                resolution=resolution,
                processing_time=result.processing_time_seconds,
                model_used=result.model_id or UNKNOWN_MODEL_ID,
                cost=cost,
            ),
        )


def _or_default(value: float | None, default: float) -> float:
    return default if value is None else value


__all__ = ["DEFAULT_TARGET_DIMENSIONS", "QualityAssessor"]
