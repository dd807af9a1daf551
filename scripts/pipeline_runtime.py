"""Process runtime for queue workers: shutdown, logging and the serve loop."""

from __future__ import annotations

import signal
import threading
import time
from collections.abc import Callable
from types import FrameType
from typing import Protocol

from genqueue.config.logging_config import (
    bind_context,
    get_logger,
    setup_logging,
    unbind_context,
)
from genqueue.config.settings import Settings

logger = get_logger(__name__)

_MIN_WAIT_SECONDS = 0.1


class ShutdownSignal(Protocol):
    def is_set(self) -> bool: ...

    def wait(self, timeout: float) -> bool: ...


class ShutdownController:
    """Set by SIGTERM/SIGINT; the serve loop checks it between passes."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)

    def request(self, signum: int, frame: FrameType | None) -> None:
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        self._event.set()


def create_shutdown_controller() -> ShutdownController:
    return ShutdownController()


def install_signal_handlers(controller: ShutdownController) -> None:
    for watched in (signal.SIGTERM, signal.SIGINT):
        signal.signal(watched, controller.request)


def initialize_logging(settings: Settings, *, json_logs: bool = False) -> None:
    effective_json = json_logs or settings.json_logs
    setup_logging(log_level=settings.log_level, json_logs=effective_json)
    logger.info(
        "logging_initialized", level=settings.log_level, json_logs=effective_json
    )


class ServableWorker(Protocol):
    @property
    def worker_id(self) -> str: ...

    def register(self) -> None: ...

    def unregister(self) -> None: ...

    def reclaim_expired_leases(self) -> int: ...

    def process_available_tasks(self) -> int: ...


def serve_worker(
    worker: ServableWorker,
    controller: ShutdownSignal,
    *,
    poll_interval: float,
    reclaim_interval: float,
    run_once: bool = False,
    failure_backoff_seconds: float = 1.0,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Serve queue work until shutdown is requested.

    The worker is registered for its priorities for the whole call and
    unregistered on every exit path. Expired leases are reclaimed on the first
    pass and then at most once per ``reclaim_interval``; a failed reclaim is
    retried on the next pass. An idle pass waits ``poll_interval``; a failed
    pass waits ``failure_backoff_seconds`` (or raises with ``run_once``).
    """

    poll_interval = max(_MIN_WAIT_SECONDS, poll_interval)
    failure_backoff_seconds = max(_MIN_WAIT_SECONDS, failure_backoff_seconds)

    bind_context(worker_id=worker.worker_id)
    worker.register()
    logger.info(
        "worker_serving",
        poll_interval=poll_interval,
        reclaim_interval=reclaim_interval,
        run_once=run_once,
    )

    passes = 0
    processed_total = 0
    next_reclaim = clock()
    try:
        while not controller.is_set():
            passes += 1
            try:
                now = clock()
                if now >= next_reclaim:
                    worker.reclaim_expired_leases()
                    next_reclaim = now + reclaim_interval
                processed = worker.process_available_tasks()
            except Exception:  # noqa: BLE001
                logger.exception("worker_pass_failed", passes=passes)
                if run_once:
                    raise
                controller.wait(failure_backoff_seconds)
                continue

            processed_total += processed
            if run_once:
                break
            if processed == 0:
                controller.wait(poll_interval)
    finally:
        worker.unregister()
        logger.info("worker_stopped", passes=passes, processed=processed_total)
        unbind_context("worker_id")


__all__ = [
    "ServableWorker",
    "ShutdownController",
    "ShutdownSignal",
    "create_shutdown_controller",
    "initialize_logging",
    "install_signal_handlers",
    "serve_worker",
]
