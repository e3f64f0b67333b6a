# src/llm_stream_kit/resilience/circuit_breaker.py

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from time import monotonic
from typing import TypeVar

from llm_stream_kit.errors import CircuitOpenError
from llm_stream_kit.observability import names
from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops calling a failing upstream until it has had time to recover.

    - CLOSED: calls pass; ``failure_threshold`` consecutive failures open it.
    - OPEN: calls are rejected until ``reset_timeout`` seconds have passed,
      then the next call moves it to HALF_OPEN.
    - HALF_OPEN: calls pass; any failure reopens it, ``success_threshold``
      successes close it.

    Not thread-safe. Share one instance per event loop.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        success_threshold: int = 2,
        clock: Callable[[], float] = monotonic,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")

        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._success_threshold = success_threshold
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._open_until = 0.0
        self._failures = 0
        self._successes = 0
        self.metrics_hook = metrics_hook

    @property
    def state(self) -> CircuitState:
        return self._state

    def allow(self) -> bool:
        if self._state is CircuitState.OPEN:
            if self._clock() < self._open_until:
                return False
            self._state = CircuitState.HALF_OPEN
            self._successes = 0
            logger.info("Circuit half-open, probing upstream")
        return True

    def record_success(self) -> None:
        if self._state is CircuitState.CLOSED:
            self._failures = 0
        elif self._state is CircuitState.HALF_OPEN:
            self._successes += 1
            if self._successes >= self._success_threshold:
                self.reset()
                logger.info("Circuit closed")

    def record_failure(self) -> None:
        if self._state is CircuitState.CLOSED:
            self._failures += 1
            if self._failures >= self._failure_threshold:
                self._trip()
        elif self._state is CircuitState.HALF_OPEN:
            self._trip()

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: The circuit is open.
        """
        if not self.allow():
            self.metrics_hook.increment(names.CIRCUIT_REJECTIONS_TOTAL)
            raise CircuitOpenError("Circuit is open, upstream temporarily unavailable")

        try:
            result = await operation()
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._open_until = self._clock() + self._reset_timeout
        self._successes = 0
        logger.warning(
            "Circuit opened after %d failures, retry in %.1fs",
            self._failures,
            self._reset_timeout,
        )
