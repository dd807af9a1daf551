"""Bounded list of tasks that exhausted their retries."""

from __future__ import annotations

from typing import Final

from pydantic import ValidationError as PydanticValidationError

from genqueue.config.logging_config import get_logger
from genqueue.domain.task_queue import DeadLetterEntry
from genqueue.ports.ordered_store import OrderedStorePort

logger = get_logger(__name__)

DEAD_LETTER_KEY: Final[str] = "queue:dead_letter"


class DeadLetterStore:
    """Newest-first dead letter list.

    Once the list grows past ``max_entries`` it is trimmed back to the newest
    ``trim_to`` entries.
    """

    def __init__(
        self,
        store: OrderedStorePort,
        *,
        max_entries: int = 1000,
        trim_to: int = 500,
    ) -> None:
        if trim_to <= 0 or trim_to > max_entries:
            msg = "trim_to must be positive and not exceed max_entries"
            raise ValueError(msg)
        self._store = store
        self._max_entries = max_entries
        self._trim_to = trim_to

    def append(self, entry: DeadLetterEntry) -> None:
        length = self._store.lpush(DEAD_LETTER_KEY, entry.model_dump_json())
        if length > self._max_entries:
            self._store.ltrim(DEAD_LETTER_KEY, 0, self._trim_to - 1)
            logger.info(
                "dead_letter_trimmed",
                previous_length=length,
                kept=self._trim_to,
            )

    def entries(self, limit: int = 50) -> list[DeadLetterEntry]:
        """Return up to ``limit`` entries, newest first."""

        if limit <= 0:
            return []
        entries: list[DeadLetterEntry] = []
        for raw in self._store.lrange(DEAD_LETTER_KEY, 0, limit - 1):
            try:
                entries.append(DeadLetterEntry.model_validate_json(raw))
            except PydanticValidationError as exc:
                logger.warning("dead_letter_entry_malformed", error=str(exc))
        return entries

    def size(self) -> int:
        return self._store.llen(DEAD_LETTER_KEY)


__all__ = ["DEAD_LETTER_KEY", "DeadLetterStore"]
