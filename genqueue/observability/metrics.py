"""Prometheus metrics for queue and pipeline observability.

The HTTP exporter is opt-in: worker entry points call
``ensure_metrics_exporter()`` when started with ``--metrics``.
"""

from __future__ import annotations

import os
import threading
from typing import Final

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from genqueue.config.logging_config import get_logger

logger = get_logger(__name__)

TASKS_ENQUEUED_TOTAL: Final = Counter(
    "genqueue_tasks_enqueued_total",
    "Total number of tasks enqueued",
    labelnames=("priority", "task_type"),
)

TASKS_COMPLETED_TOTAL: Final = Counter(
    "genqueue_tasks_completed_total",
    "Total number of tasks completed",
    labelnames=("priority", "task_type"),
)

TASKS_FAILED_TOTAL: Final = Counter(
    "genqueue_tasks_failed_total",
    "Total number of task failures by outcome",
    labelnames=("priority", "task_type", "outcome"),
)

TASK_PROCESSING_SECONDS: Final = Histogram(
    "genqueue_task_processing_seconds",
    "Time between dequeue and completion",
    labelnames=("priority",),
)

LEASES_RECLAIMED_TOTAL: Final = Counter(
    "genqueue_leases_reclaimed_total",
    "Tasks whose processing lease expired",
    labelnames=("priority",),
)

CIRCUIT_OPEN: Final = Gauge(
    "genqueue_circuit_open",
    "1 when the dependency circuit is open, 0.5 half-open, 0 closed",
    labelnames=("dependency",),
)

GENERATION_COST_TOTAL: Final = Counter(
    "genqueue_generation_cost_total",
    "Accumulated generation spend",
    labelnames=("model",),
)

GENERATION_QUALITY_SCORE: Final = Histogram(
    "genqueue_generation_quality_score",
    "Overall quality score of assessed generations",
    labelnames=("use_case",),
    buckets=(50.0, 60.0, 70.0, 75.0, 80.0, 85.0, 90.0, 95.0, 100.0),
)

QUALITY_RETRIES_TOTAL: Final = Counter(
    "genqueue_quality_retries_total",
    "Generations re-submitted because they missed the quality threshold",
    labelnames=("use_case",),
)

MANUAL_REVIEW_TOTAL: Final = Counter(
    "genqueue_manual_review_total",
    "Low-quality generations flagged for manual review",
    labelnames=("use_case",),
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False
_DEFAULT_METRICS_PORT: Final[int] = 9000
_METRICS_PORT_ENV: Final[str] = "METRICS_PORT"


def _resolve_metrics_port() -> int:
    port_raw = os.getenv(_METRICS_PORT_ENV)
    try:
        return int(port_raw) if port_raw else _DEFAULT_METRICS_PORT
    except ValueError:
        logger.warning("invalid_metrics_port", port=port_raw)
        return _DEFAULT_METRICS_PORT


def ensure_metrics_exporter(port: int | None = None) -> None:
    """Start Prometheus HTTP exporter once per process.

    ``port`` defaults to ``METRICS_PORT`` (9000 when unset or invalid).
    """

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        port = port or _resolve_metrics_port()

        try:
            start_http_server(port)
        except OSError as exc:
            logger.error(
                "metrics_exporter_start_failed",
                port=port,
                error=str(exc),
            )
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=port)


__all__ = [
    "CIRCUIT_OPEN",
    "GENERATION_COST_TOTAL",
    "GENERATION_QUALITY_SCORE",
    "LEASES_RECLAIMED_TOTAL",
    "MANUAL_REVIEW_TOTAL",
    "QUALITY_RETRIES_TOTAL",
    "TASKS_COMPLETED_TOTAL",
    "TASKS_ENQUEUED_TOTAL",
    "TASKS_FAILED_TOTAL",
    "TASK_PROCESSING_SECONDS",
    "ensure_metrics_exporter",
]
