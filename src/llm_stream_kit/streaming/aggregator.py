# src/llm_stream_kit/streaming/aggregator.py

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from time import monotonic

from llm_stream_kit.observability import names
from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s")


@dataclass
class ChunkBuffer:
    """Accumulation state owned by a single aggregator."""

    pending: str = ""
    emitted_count: int = 0
    started_at: float | None = None


class ChunkAggregator:
    """Turns a stream of text fragments into finalized units.

    A unit is finalized once a delimiter follows it. The trailing fragment
    stays pending until more text arrives or ``finalize()`` is called.

    Empty units (produced by consecutive delimiters, or by a delimiter at the
    very start of the stream) are dropped unless ``keep_empty`` is set.

    Example:
        >>> agg = ChunkAggregator()
        >>> for chunk in ["Hel", "lo wor", "ld "]:
        ...     agg.ingest(chunk)
        >>> agg.units
        ['Hello', 'world']
    """

    def __init__(
        self,
        *,
        delimiter: str | None = None,
        keep_empty: bool = False,
        clock: Callable[[], float] = monotonic,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        if delimiter == "":
            raise ValueError("delimiter must be a non-empty string or None")

        self._pattern = (
            _WHITESPACE if delimiter is None else re.compile(re.escape(delimiter))
        )
        self._keep_empty = keep_empty
        self._clock = clock
        self._buffer = ChunkBuffer()
        self._units: list[str] = []
        self.metrics_hook = metrics_hook

    @property
    def units(self) -> list[str]:
        # shallow copy so callers can't corrupt the output sequence
        return list(self._units)

    @property
    def pending(self) -> str:
        return self._buffer.pending

    @property
    def emitted_count(self) -> int:
        return self._buffer.emitted_count

    @property
    def started_at(self) -> float | None:
        return self._buffer.started_at

    def ingest(self, chunk: str) -> list[str]:
        """Append a chunk and return the units it finalized, in order."""
        if not chunk:
            return []

        if self._buffer.started_at is None:
            self._buffer.started_at = self._clock()

        pieces = self._pattern.split(self._buffer.pending + chunk)
        self._buffer.pending = pieces.pop()
        return self._emit(pieces)

    def finalize(self) -> str | None:
        """Flush the trailing fragment as a final unit.

        Returns the unit, or None when nothing was pending.
        """
        if not self._buffer.pending:
            return None

        unit = self._buffer.pending
        self._buffer.pending = ""
        self._emit([unit])
        logger.debug("Finalized trailing unit, total units=%d", len(self._units))
        return unit

    def throughput(self) -> float:
        """Finalized units per second since the first chunk arrived."""
        if self._buffer.started_at is None or self._buffer.emitted_count == 0:
            return 0.0

        elapsed = self._clock() - self._buffer.started_at
        if elapsed <= 0:
            return 0.0
        return self._buffer.emitted_count / elapsed

    def _emit(self, pieces: list[str]) -> list[str]:
        if not self._keep_empty:
            pieces = [p for p in pieces if p]
        if not pieces:
            return []

        self._units.extend(pieces)
        self._buffer.emitted_count += len(pieces)
        self.metrics_hook.increment(names.STREAM_UNITS_EMITTED, len(pieces))
        return pieces
