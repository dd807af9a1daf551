"""Domain model for per-dependency circuit breakers."""

from __future__ import annotations

from enum import StrEnum
from typing import Final

from pydantic import BaseModel, Field

DEFAULT_FAILURE_THRESHOLD: Final[int] = 5
DEFAULT_TIMEOUT_SECONDS: Final[float] = 60.0
DEFAULT_SUCCESS_THRESHOLD: Final[int] = 2

DEFAULT_DEPENDENCIES: Final[tuple[str, ...]] = (
    "ai_generation",
    "spotify_api",
    "apple_music_api",
    "database",
    "cache",
)


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreakerState(BaseModel):
    """Persisted breaker record for one logical dependency."""

    dependency: str
    state: CircuitState = CircuitState.CLOSED
    failures: int = Field(default=0, ge=0)
    last_failure: float | None = None
    success_count: int = Field(default=0, ge=0)
    threshold: int = Field(default=DEFAULT_FAILURE_THRESHOLD, gt=0)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0.0)

    def cooldown_elapsed(self, now: float) -> bool:
        if self.last_failure is None:
            return True
        return now - self.last_failure > self.timeout_seconds


__all__ = [
    "DEFAULT_DEPENDENCIES",
    "DEFAULT_FAILURE_THRESHOLD",
    "DEFAULT_SUCCESS_THRESHOLD",
    "DEFAULT_TIMEOUT_SECONDS",
    "CircuitBreakerState",
    "CircuitState",
]
