# src/llm_stream_kit/observability/base.py

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class MetricsHook(Protocol):
    """Sink for stream lifecycle, flush, transport and retry metrics.

    Registries, pipelines, emitters, transports and breakers each take one.
    Metric names come from ``observability.names``. Durations are in
    milliseconds; ``labels`` carry the provider, model or terminal state.
    Implementations must not raise: they are called from stream callbacks
    and timer tasks.
    """

    def record_latency(
        self,
        name: str,
        value_ms: float,
        labels: dict[str, str] | None = None,
    ) -> None: ...

    def increment(
        self,
        name: str,
        value: int = 1,
        labels: dict[str, str] | None = None,
    ) -> None: ...

    def record_gauge(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None: ...


class NoOpMetricsHook:
    """Default hook. Drops every metric."""

    def record_latency(
        self, name: str, value_ms: float, labels: dict[str, str] | None = None
    ) -> None:
        pass

    def increment(
        self, name: str, value: int = 1, labels: dict[str, str] | None = None
    ) -> None:
        pass

    def record_gauge(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        pass


class LoggingMetricsHook:
    """Writes every metric to a logger at DEBUG.

    Useful during development when no metrics backend is wired up.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def record_latency(
        self, name: str, value_ms: float, labels: dict[str, str] | None = None
    ) -> None:
        self._log.debug("latency %s=%.1fms labels=%s", name, value_ms, labels or {})

    def increment(
        self, name: str, value: int = 1, labels: dict[str, str] | None = None
    ) -> None:
        self._log.debug("counter %s+=%d labels=%s", name, value, labels or {})

    def record_gauge(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        self._log.debug("gauge %s=%s labels=%s", name, value, labels or {})
