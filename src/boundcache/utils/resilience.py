from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from .config import ResilienceConfig

T = TypeVar("T")

_logger = logging.getLogger(__name__)


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout_seconds: float = 30.0

    @classmethod
    def from_resilience(cls, config: ResilienceConfig) -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=config.failure_threshold,
            reset_timeout_seconds=config.reset_timeout_seconds,
        )


class CircuitState:
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fails fast with ``RuntimeError("circuit_open")`` after repeated backend failures.

    After ``reset_timeout_seconds`` one trial call is let through (half-open); its
    outcome closes or re-opens the circuit.
    """

    def __init__(self, config: Optional[CircuitBreakerConfig] = None, name: str = "redis") -> None:
        self._config = config or CircuitBreakerConfig()
        self._name = name
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0

    @property
    def state(self) -> str:
        return self._state

    def _can_attempt(self) -> bool:
        if self._state == CircuitState.OPEN:
            if (time.monotonic() - self._opened_at) >= self._config.reset_timeout_seconds:
                self._state = CircuitState.HALF_OPEN
                _logger.info("Circuit %s half-open, allowing a trial call", self._name)
                return True
            return False
        return True

    def _on_success(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0

    def _on_failure(self) -> None:
        self._failures += 1
        if self._state == CircuitState.HALF_OPEN or self._failures >= self._config.failure_threshold:
            if self._state != CircuitState.OPEN:
                _logger.warning("Circuit %s opened after %d failure(s)", self._name, self._failures)
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        if not self._can_attempt():
            raise RuntimeError("circuit_open")
        try:
            result = await fn()
        except Exception:
            self._on_failure()
            raise
        else:
            self._on_success()
            return result


async def with_retries(
    coro_factory: Callable[[], Awaitable[T]],
    policy: Optional[ResilienceConfig] = None,
    *,
    attempts: Optional[int] = None,
    backoff_ms: Optional[Iterable[int]] = None,
) -> T:
    """Await ``coro_factory()`` until it succeeds or the attempts run out.

    Attempts and backoff come from ``policy`` (``retry_max_attempts``,
    ``retry_backoff_ms``); ``attempts`` / ``backoff_ms`` override it. The last
    error is re-raised.
    """
    policy = policy or ResilienceConfig()
    max_attempts = max(policy.retry_max_attempts if attempts is None else attempts, 1)
    delays: List[int] = list(policy.retry_backoff_ms if backoff_ms is None else backoff_ms) or [0]
    for attempt in range(1, max_attempts + 1):
        try:
            return await coro_factory()
        except Exception as exc:  # noqa: BLE001 - broad for retry wrapper
            if attempt == max_attempts:
                raise
            delay_ms = delays[min(attempt - 1, len(delays) - 1)]
            _logger.debug("Attempt %d/%d failed (%s), retrying in %dms", attempt, max_attempts, exc, delay_ms)
            await asyncio.sleep(delay_ms / 1000.0)
    raise AssertionError("unreachable")
