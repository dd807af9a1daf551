"""Entry point for the priority queue worker."""

from __future__ import annotations

import argparse
import pkgutil
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts import pipeline_runtime
from genqueue.config.logging_config import get_logger
from genqueue.config.settings import get_settings
from genqueue.domain.exceptions import StoreConnectionError
from genqueue.domain.task_queue import PRIORITIES_IN_SERVICE_ORDER, Priority
from genqueue.observability.metrics import ensure_metrics_exporter
from genqueue.ports.image_generator import ImageGeneratorPort
from genqueue.use_cases.pipeline_factories import (
    build_queue_context,
    create_ai_task_handlers,
)
from genqueue.workers.pipeline import QueueWorker

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the priority queue worker")
    parser.add_argument(
        "--generator",
        required=True,
        help=(
            "Import path of a zero-argument factory returning the image "
            "generator, e.g. 'mypkg.providers:create_generator'"
        ),
    )
    parser.add_argument(
        "--priority",
        dest="priorities",
        action="append",
        choices=[priority.value for priority in PRIORITIES_IN_SERVICE_ORDER],
        help="Priority to serve (repeatable; defaults to all)",
    )
    parser.add_argument(
        "--dependency",
        default=None,
        help="Skip polling while this dependency's circuit is open",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=8,
        help="Maximum tasks processed per polling pass",
    )
    parser.add_argument(
        "--poll-interval-seconds",
        type=float,
        default=None,
        help="Seconds to wait between passes when the queues are idle",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Process a single pass of tasks and exit",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Start the Prometheus exporter",
    )
    return parser.parse_args(argv)


def load_generator(import_path: str) -> ImageGeneratorPort:
    factory = pkgutil.resolve_name(import_path)
    generator = factory()
    if not isinstance(generator, ImageGeneratorPort):
        msg = f"{import_path} did not return an image generator"
        raise TypeError(msg)
    return generator


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    pipeline_runtime.initialize_logging(settings, json_logs=args.json_logs)

    if args.metrics:
        ensure_metrics_exporter()

    try:
        generator = load_generator(args.generator)
    except (ImportError, AttributeError, ValueError, TypeError) as exc:
        logger.error("generator_load_failed", generator=args.generator, error=str(exc))
        return 1

    context = build_queue_context(settings)
    health = context.queue_manager.health_check()
    if health.status != "healthy":
        logger.error("queue_store_unavailable", details=health.details)
        return 1

    controller = pipeline_runtime.create_shutdown_controller()
    pipeline_runtime.install_signal_handlers(controller)

    priorities = (
        [Priority(value) for value in args.priorities]
        if args.priorities
        else list(PRIORITIES_IN_SERVICE_ORDER)
    )
    worker = QueueWorker(
        task_queue=context.queue_manager,
        handlers=create_ai_task_handlers(
            orchestrator=context.orchestrator, generator=generator
        ),
        priorities=priorities,
        dependency=args.dependency,
        batch_size=args.batch_size,
    )

    poll_interval = (
        args.poll_interval_seconds
        if args.poll_interval_seconds is not None
        else settings.worker_poll_interval_seconds
    )

    try:
        pipeline_runtime.serve_worker(
            worker,
            controller,
            poll_interval=poll_interval,
            reclaim_interval=settings.lease_reclaim_interval_seconds,
            run_once=args.run_once,
        )
    except StoreConnectionError as exc:
        logger.error("queue_store_lost", error=str(exc))
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
