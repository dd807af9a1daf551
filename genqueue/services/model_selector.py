"""Cost and quality aware model routing for generation requests."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from genqueue.config.logging_config import get_logger
from genqueue.domain.ai_pipeline import (
    AIModel,
    AIPipelineRequest,
    AIQueueConfig,
    ModelSpeed,
    RequestPriority,
    SmartSuggestion,
    UseCase,
)
from genqueue.domain.exceptions import ModelSelectionError, ValidationError
from genqueue.domain.model_catalog import AI_QUEUE_CONFIGS

logger = get_logger(__name__)

POSE_CAPABILITY: Final[str] = "pose-estimation"
STYLE_CAPABILITY: Final[str] = "style-preservation"
HIGH_QUALITY_CAPABILITY: Final[str] = "high-quality-output"
VARIATIONS_CAPABILITY: Final[str] = "multiple-variations"

_POSE_QUALITY_BONUS: Final[float] = 10.0
_STYLE_QUALITY_BONUS: Final[float] = 5.0
_POSE_TIME_PENALTY: Final[float] = 15.0
_HIGH_QUALITY_TIME_PENALTY: Final[float] = 10.0
_VARIATIONS_TIME_CREDIT: Final[float] = 5.0
_BUDGET_BONUS: Final[float] = 10.0
_CAPABILITY_WEIGHT: Final[float] = 15.0
_QUALITY_DISTANCE_WEIGHT: Final[float] = 0.5
_MAX_SCORE: Final[float] = 100.0


@dataclass(frozen=True)
class _ScoredModel:
    model: AIModel
    projected_cost: float
    projected_quality: float
    projected_time: float
    within_budget: bool
    matched: tuple[str, ...]
    fit: float


class ModelSelector:
    """Pick the best-fitting model for a request within its use-case policy."""

    def __init__(
        self, queue_configs: Mapping[UseCase, AIQueueConfig] = AI_QUEUE_CONFIGS
    ) -> None:
        self._queue_configs = queue_configs

    def queue_config(self, use_case: UseCase) -> AIQueueConfig:
        config = self._queue_configs.get(use_case)
        if config is None:
            raise ValidationError(f"Unknown use case: {use_case}")
        return config

    def select_best_model(self, request: AIPipelineRequest) -> SmartSuggestion:
        """Return a suggestion for ``request``; some model is always chosen.

        Models over the use-case budget are ineligible; capability matches only
        raise the fit. When nothing is eligible, or no candidate offers any of
        the requested capabilities, the cheapest projected candidate is
        returned with ``fallback=True``.

        Raises:
            ValidationError: If the use case has no configuration.
            ModelSelectionError: If the use case lists no models.
        """
        config = self.queue_config(request.use_case)
        if not config.models:
            raise ModelSelectionError(
                f"No models configured for use case {request.use_case}"
            )

        scored = [self._score(model, request, config) for model in config.models]
        eligible = [item for item in scored if item.within_budget]
        if request.capabilities and not any(item.matched for item in scored):
            eligible = []

        if eligible:
            best = max(eligible, key=lambda item: item.fit)
            suggestion = self._to_suggestion(best, request, fallback=False)
        else:
            best = min(scored, key=lambda item: item.projected_cost)
            suggestion = self._to_suggestion(best, request, fallback=True)
            logger.warning(
                "model_selection_fallback",
                use_case=request.use_case.value,
                model_id=best.model.id,
                budget=config.cost_budget,
            )

        logger.debug(
            "model_selected",
            use_case=request.use_case.value,
            model_id=suggestion.model_id,
            confidence=round(suggestion.confidence, 3),
            expected_cost=suggestion.expected_cost,
            fallback=suggestion.fallback,
        )
        return suggestion

    def _score(
        self, model: AIModel, request: AIPipelineRequest, config: AIQueueConfig
    ) -> _ScoredModel:
        requested = request.capabilities
        matched = tuple(cap for cap in requested if model.has_capability(cap))

        projected_cost = model.base_cost * (
            1.0 + model.retry_cost_multiplier * request.retry_count
        )

        projected_quality = model.quality
        if POSE_CAPABILITY in requested and model.has_capability(POSE_CAPABILITY):
            projected_quality += _POSE_QUALITY_BONUS
        if STYLE_CAPABILITY in requested and model.has_capability(STYLE_CAPABILITY):
            projected_quality += _STYLE_QUALITY_BONUS
        projected_quality = min(projected_quality, _MAX_SCORE)

        projected_time = model.estimated_time
        if POSE_CAPABILITY in requested:
            projected_time += _POSE_TIME_PENALTY
        if HIGH_QUALITY_CAPABILITY in requested:
            projected_time += _HIGH_QUALITY_TIME_PENALTY
        if VARIATIONS_CAPABILITY in requested:
            projected_time -= _VARIATIONS_TIME_CREDIT
        projected_time = max(projected_time, 1.0)

        within_budget = model.base_cost <= config.cost_budget
        matched_fraction = len(matched) / len(requested) if requested else 0.0

        fit = model.compatibility_score
        if within_budget:
            fit += _BUDGET_BONUS
        fit += _CAPABILITY_WEIGHT * matched_fraction
        fit -= _QUALITY_DISTANCE_WEIGHT * abs(model.quality - request.quality_threshold)
        fit = min(max(fit, 0.0), _MAX_SCORE)

        return _ScoredModel(
            model=model,
            projected_cost=projected_cost,
            projected_quality=projected_quality,
            projected_time=projected_time,
            within_budget=within_budget,
            matched=matched,
            fit=fit,
        )

    def _to_suggestion(
        self, scored: _ScoredModel, request: AIPipelineRequest, *, fallback: bool
    ) -> SmartSuggestion:
        reasons: list[str] = []
        if scored.within_budget:
            reasons.append("within cost budget")
        if scored.projected_quality >= request.quality_threshold:
            reasons.append("meets quality threshold")
        if (
            request.priority is RequestPriority.HIGH
            and scored.model.speed is ModelSpeed.FAST
        ):
            reasons.append("fast model for high-priority request")
        if scored.matched:
            reasons.append(f"matches capabilities: {', '.join(scored.matched)}")
        if fallback:
            reasons.append(
                "no model met budget and capability constraints; "
                "using lowest projected cost"
            )

        return SmartSuggestion(
            model_id=scored.model.id,
            confidence=scored.fit / _MAX_SCORE,
            reasons=reasons,
            expected_cost=scored.projected_cost,
            expected_quality=scored.projected_quality,
            estimated_time=scored.projected_time,
            fallback=fallback,
        )


__all__ = ["ModelSelector"]
