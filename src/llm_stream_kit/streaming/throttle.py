# src/llm_stream_kit/streaming/throttle.py

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from time import monotonic
from typing import Any

from llm_stream_kit.observability import names
from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook

logger = logging.getLogger(__name__)


@dataclass
class ThrottleWindow:
    """Timing state owned by a single emitter."""

    interval: float
    last_flush_at: float | None = None


class ThrottledEmitter:
    """Coalesces incoming text and forwards it at most once per interval.

    Arrival frequency is decoupled from presentation frequency: chunks are
    buffered and a periodic timer releases the whole buffer in one consumer
    call. The timer disarms itself on an idle tick and is re-armed by the
    next ``ingest``. A consumer error raised from a periodic flush disarms
    the timer and is re-raised by ``finish()`` after the final flush.

    The consumer may be a plain function or a coroutine function. It runs
    on the event loop that owns the emitter.
    """

    def __init__(
        self,
        on_update: Callable[[str], Any],
        *,
        interval: float = 0.1,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")

        self._on_update = on_update
        self._window = ThrottleWindow(interval=interval)
        self._buffer = ""
        self._timer: asyncio.Task[None] | None = None
        self._stop: asyncio.Event | None = None
        self._error: Exception | None = None
        self.metrics_hook = metrics_hook

    @property
    def interval(self) -> float:
        return self._window.interval

    @property
    def last_flush_at(self) -> float | None:
        return self._window.last_flush_at

    @property
    def pending(self) -> str:
        return self._buffer

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def ingest(self, chunk: str) -> None:
        """Buffer a chunk, arming the timer if it is not running.

        Must be called from a running event loop.
        """
        if not chunk:
            return

        self._buffer += chunk
        if self._timer is None:
            self._stop = asyncio.Event()
            self._timer = asyncio.get_running_loop().create_task(
                self._tick(self._stop)
            )
            logger.debug("Armed throttle timer, interval=%ss", self._window.interval)

    async def finish(self) -> None:
        """Stop the timer and force a final flush. Safe to call repeatedly.

        Raises:
            The first error the consumer raised during a periodic flush,
            after the final flush has run.
        """
        try:
            await self._disarm()
        finally:
            await self._flush()

        error, self._error = self._error, None
        if error is not None:
            raise error

    def cancel(self) -> None:
        """Stop the timer and drop buffered content without delivering it."""
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self._stop = None
        self._error = None
        if self._buffer:
            logger.debug("Discarding %d buffered chars", len(self._buffer))
        self._buffer = ""

    async def _disarm(self) -> None:
        timer, stop = self._timer, self._stop
        self._timer = None
        self._stop = None
        if timer is None or stop is None:
            return

        stop.set()
        # let an in-progress delivery run to completion
        await timer

    async def _tick(self, stop: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._window.interval)
                return
            except asyncio.TimeoutError:
                pass

            if not self._buffer:
                if self._stop is stop:
                    self._timer = None
                    self._stop = None
                logger.debug("Idle tick, throttle timer disarmed")
                return

            try:
                await self._flush()
            except Exception as exc:
                if self._stop is stop:
                    self._timer = None
                    self._stop = None
                if self._error is None:
                    self._error = exc
                logger.warning("Consumer failed during periodic flush: %s", exc)
                return

    async def _flush(self) -> None:
        if not self._buffer:
            return

        text, self._buffer = self._buffer, ""
        self._window.last_flush_at = monotonic()
        self.metrics_hook.increment(names.STREAM_FLUSHES_TOTAL)
        logger.debug("Flushing %d chars", len(text))

        result = self._on_update(text)
        if inspect.isawaitable(result):
            await result
