"""Per-dependency circuit breakers persisted in the shared store.

Breakers are advisory: workers consult ``is_open`` before pulling work for a
dependency, while queue completions and failures feed ``record_success`` and
``record_failure``. State lives under ``circuit:{dependency}`` so every
process sharing the store observes the same breaker.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import Final

from pydantic import ValidationError as PydanticValidationError

from genqueue.config.logging_config import get_logger
from genqueue.domain.circuit_breaker import (
    DEFAULT_DEPENDENCIES,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_SUCCESS_THRESHOLD,
    DEFAULT_TIMEOUT_SECONDS,
    CircuitBreakerState,
    CircuitState,
)
from genqueue.domain.exceptions import StoreConnectionError
from genqueue.observability.metrics import CIRCUIT_OPEN
from genqueue.ports.ordered_store import OrderedStorePort

logger = get_logger(__name__)

CIRCUIT_KEY_PREFIX: Final[str] = "circuit:"
CIRCUIT_REGISTRY_KEY: Final[str] = "circuits:known"

_GAUGE_VALUES: Final[dict[CircuitState, float]] = {
    CircuitState.CLOSED: 0.0,
    CircuitState.HALF_OPEN: 0.5,
    CircuitState.OPEN: 1.0,
}


def circuit_key(dependency: str) -> str:
    return f"{CIRCUIT_KEY_PREFIX}{dependency}"


class CircuitBreakerRegistry:
    """Closed/open/half-open state machine for each named dependency."""

    def __init__(
        self,
        store: OrderedStorePort,
        *,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        success_threshold: int = DEFAULT_SUCCESS_THRESHOLD,
        dependencies: Iterable[str] = DEFAULT_DEPENDENCIES,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._store = store
        self._failure_threshold = failure_threshold
        self._timeout_seconds = timeout_seconds
        self._success_threshold = success_threshold
        self._clock = clock or time.time
        self._seeded = tuple(dependencies)

    def is_open(self, dependency: str) -> bool:
        """Return True when work for ``dependency`` should be skipped.

        An open breaker whose cool-down has elapsed moves to half-open here,
        which lets the next caller probe the dependency.
        """
        try:
            state = self._load(dependency)
            state = self._evaluate(state)
        except StoreConnectionError as exc:
            logger.warning(
                "circuit_state_unavailable", dependency=dependency, error=str(exc)
            )
            return False
        return state.state is CircuitState.OPEN

    def record_success(self, dependency: str) -> None:
        try:
            state = self._evaluate(self._load(dependency))
            if state.state is CircuitState.HALF_OPEN:
                state.success_count += 1
                if state.success_count >= self._success_threshold:
                    state.state = CircuitState.CLOSED
                    state.failures = 0
                    state.success_count = 0
                    logger.info("circuit_closed", dependency=dependency)
            elif state.state is CircuitState.CLOSED:
                if state.failures == 0:
                    return
                state.failures = 0
            else:
                return
            self._save(state)
        except StoreConnectionError as exc:
            logger.warning(
                "circuit_update_failed", dependency=dependency, error=str(exc)
            )

    def record_failure(self, dependency: str) -> None:
        try:
            state = self._evaluate(self._load(dependency))
            state.failures += 1
            state.last_failure = self._clock()
            if state.state is CircuitState.HALF_OPEN:
                state.state = CircuitState.OPEN
                state.success_count = 0
                logger.warning("circuit_reopened", dependency=dependency)
            elif (
                state.state is CircuitState.CLOSED
                and state.failures >= state.threshold
            ):
                state.state = CircuitState.OPEN
                logger.warning(
                    "circuit_opened", dependency=dependency, failures=state.failures
                )
            self._save(state)
        except StoreConnectionError as exc:
            logger.warning(
                "circuit_update_failed", dependency=dependency, error=str(exc)
            )

    def get_state(self, dependency: str) -> CircuitBreakerState:
        return self._evaluate(self._load(dependency))

    def snapshot(self) -> dict[str, CircuitBreakerState]:
        """Return every known breaker (seeded and ever-recorded)."""

        dependencies = set(self._seeded) | self._store.smembers(CIRCUIT_REGISTRY_KEY)
        return {name: self.get_state(name) for name in sorted(dependencies)}

    def _default_state(self, dependency: str) -> CircuitBreakerState:
        return CircuitBreakerState(
            dependency=dependency,
            threshold=self._failure_threshold,
            timeout_seconds=self._timeout_seconds,
        )

    def _load(self, dependency: str) -> CircuitBreakerState:
        raw = self._store.get(circuit_key(dependency))
        if raw is None:
            return self._default_state(dependency)
        try:
            return CircuitBreakerState.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning(
                "circuit_state_malformed", dependency=dependency, error=str(exc)
            )
            return self._default_state(dependency)

    def _evaluate(self, state: CircuitBreakerState) -> CircuitBreakerState:
        if state.state is CircuitState.OPEN and state.cooldown_elapsed(self._clock()):
            state.state = CircuitState.HALF_OPEN
            state.success_count = 0
            self._save(state)
            logger.info("circuit_half_open", dependency=state.dependency)
        return state

    def _save(self, state: CircuitBreakerState) -> None:
        self._store.set(circuit_key(state.dependency), state.model_dump_json())
        self._store.sadd(CIRCUIT_REGISTRY_KEY, state.dependency)
        CIRCUIT_OPEN.labels(dependency=state.dependency).set(
            _GAUGE_VALUES[state.state]
        )


__all__ = ["CIRCUIT_KEY_PREFIX", "CircuitBreakerRegistry", "circuit_key"]
