"""Shared generation metrics and spend counters kept in store hashes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Final

from genqueue.domain.ai_pipeline import QualityAssessment
from genqueue.ports.ordered_store import OrderedStorePort

TOTALS_KEY: Final[str] = "pipeline:totals"
DAILY_COST_KEY: Final[str] = "pipeline:daily_cost"
COST_BY_MODEL_KEY: Final[str] = "pipeline:cost_by_model"
GENERATIONS_BY_MODEL_KEY: Final[str] = "pipeline:generations_by_model"

_GENERATIONS: Final[str] = "generations"
_QUALITY: Final[str] = "quality_total"
_COST: Final[str] = "cost_total"
_GENERATION_TIME: Final[str] = "generation_time_total"
_SUCCESSES: Final[str] = "successes"
_QUEUE_WAIT: Final[str] = "queue_wait_total"
_QUEUE_WAIT_SAMPLES: Final[str] = "queue_wait_samples"
_RETRY_COST: Final[str] = "retry_cost_total"


@dataclass(frozen=True)
class LedgerSnapshot:
    """Aggregates read back from the ledger hashes."""

    generations: int = 0
    quality_total: float = 0.0
    cost_total: float = 0.0
    generation_time_total: float = 0.0
    successes: int = 0
    queue_wait_total: float = 0.0
    queue_wait_samples: int = 0
    retry_cost_total: float = 0.0
    daily_cost: dict[str, float] = field(default_factory=dict)
    cost_by_model: dict[str, float] = field(default_factory=dict)
    generations_by_model: dict[str, int] = field(default_factory=dict)


class PipelineLedger:
    """Accumulate per-generation figures so every process reports the same totals."""

    def __init__(self, store: OrderedStorePort) -> None:
        self._store = store

    def record_generation(
        self,
        assessment: QualityAssessment,
        *,
        met_threshold: bool,
        day: date,
        queue_wait_seconds: float | None = None,
        retry_count: int = 0,
    ) -> None:
        cost = assessment.metadata.cost
        model_id = assessment.metadata.model_used

        self._store.hincrbyfloat(TOTALS_KEY, _GENERATIONS, 1.0)
        self._store.hincrbyfloat(TOTALS_KEY, _QUALITY, assessment.overall_score)
        self._store.hincrbyfloat(TOTALS_KEY, _COST, cost)
        self._store.hincrbyfloat(
            TOTALS_KEY, _GENERATION_TIME, assessment.metadata.processing_time
        )
        if met_threshold:
            self._store.hincrbyfloat(TOTALS_KEY, _SUCCESSES, 1.0)
        if queue_wait_seconds is not None:
            self._store.hincrbyfloat(TOTALS_KEY, _QUEUE_WAIT, queue_wait_seconds)
            self._store.hincrbyfloat(TOTALS_KEY, _QUEUE_WAIT_SAMPLES, 1.0)
        if retry_count > 0:
            self._store.hincrbyfloat(TOTALS_KEY, _RETRY_COST, cost)

        self._store.hincrbyfloat(DAILY_COST_KEY, day.isoformat(), cost)
        self._store.hincrbyfloat(COST_BY_MODEL_KEY, model_id, cost)
        self._store.hincrbyfloat(GENERATIONS_BY_MODEL_KEY, model_id, 1.0)

    def snapshot(self) -> LedgerSnapshot:
        totals = _as_floats(self._store.hgetall(TOTALS_KEY))
        return LedgerSnapshot(
            generations=int(totals.get(_GENERATIONS, 0.0)),
            quality_total=totals.get(_QUALITY, 0.0),
            cost_total=totals.get(_COST, 0.0),
            generation_time_total=totals.get(_GENERATION_TIME, 0.0),
            successes=int(totals.get(_SUCCESSES, 0.0)),
            queue_wait_total=totals.get(_QUEUE_WAIT, 0.0),
            queue_wait_samples=int(totals.get(_QUEUE_WAIT_SAMPLES, 0.0)),
            retry_cost_total=totals.get(_RETRY_COST, 0.0),
            daily_cost=_as_floats(self._store.hgetall(DAILY_COST_KEY)),
            cost_by_model=_as_floats(self._store.hgetall(COST_BY_MODEL_KEY)),
            generations_by_model={
                model_id: int(count)
                for model_id, count in _as_floats(
                    self._store.hgetall(GENERATIONS_BY_MODEL_KEY)
                ).items()
            },
        )


def _as_floats(values: dict[str, str]) -> dict[str, float]:
    return {key: float(value) for key, value in values.items()}


__all__ = ["LedgerSnapshot", "PipelineLedger"]
