"""Structured logging for queue services.

Every entry carries ``service="genqueue"``. Worker processes bind their
``worker_id`` once so every task log line can be attributed to a worker.
Redis URLs that embed credentials are redacted before rendering.
"""

import logging
import re
import sys
from typing import Any, Final

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME: Final[str] = "genqueue"

_NOISY_LOGGERS: Final[tuple[str, ...]] = ("redis", "urllib3")
_STORE_CREDENTIALS: Final[re.Pattern[str]] = re.compile(
    r"(?P<scheme>rediss?|unix)://[^@/\s]*@"
)


def redact_credentials(value: str) -> str:
    """Replace ``user:password@`` in store URLs with ``***@``.

    Example:
        >>> redact_credentials("redis://:hunter2@cache:6379/0")
        'redis://***@cache:6379/0'
    """
    return _STORE_CREDENTIALS.sub(r"\g<scheme>://***@", value)


def add_service_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def redact_store_urls(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Redact credentials from string values, including exception text."""

    for key, value in event_dict.items():
        if isinstance(value, str) and "://" in value:
            event_dict[key] = redact_credentials(value)
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    **static_context: Any,
) -> None:
    """Configure structlog for a queue process.

    Args:
        log_level: Logging level name; unknown names fall back to INFO
        json_logs: Render JSON lines instead of the colored console format
        **static_context: Fields bound for the lifetime of the process,
            e.g. ``worker_id``
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_context,
    ]

    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(redact_store_urls)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(redact_store_urls)
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if static_context:
        bind_context(**static_context)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("task_enqueued", task_id="task_1", priority="critical")
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: Any) -> None:
    """Bind fields to every subsequent log entry in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
