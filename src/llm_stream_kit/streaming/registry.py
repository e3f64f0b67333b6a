# src/llm_stream_kit/streaming/registry.py

import asyncio
import inspect
import logging
import threading
import uuid
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass, field
from enum import Enum
from time import monotonic
from typing import Any

from llm_stream_kit.observability import names
from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    """Lifecycle state of a registered stream."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not StreamState.RUNNING


class CancelToken:
    """Cooperative cancellation signal observed by a running stream."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


Work = Callable[[CancelToken], AsyncIterable[Any]]
ChunkCallback = Callable[[Any], Any]
CompleteCallback = Callable[[], Any]
ErrorCallback = Callable[[BaseException], Any]


@dataclass(eq=False)
class StreamHandle:
    """The registry's record of one in-flight stream."""

    id: str
    token: CancelToken = field(default_factory=CancelToken)
    state: StreamState = StreamState.RUNNING
    started_at: float = field(default_factory=monotonic)
    task: "asyncio.Task[None] | None" = None

    @property
    def is_cancelled(self) -> bool:
        return self.token.is_cancelled


class StreamRegistry:
    """Runs named streams as independently cancellable asyncio tasks.

    Guarantees:
    - At most one live stream per id. Starting under a used id cancels and
      discards the previous stream first.
    - ``on_complete`` fires once on a successful, non-cancelled run.
    - ``on_error`` fires once on a failed, non-cancelled run.
    - A cancelled stream fires neither, and no ``on_chunk`` after the
      cancellation is observed.
    - A stream leaves the registry as soon as it reaches a terminal state.

    ``start`` must be called on the event loop thread. ``cancel`` and
    ``cancel_all`` may be called from any thread.

    Example:
        >>> registry = StreamRegistry()
        >>> handle = registry.start(
        ...     lambda token: transport.stream(messages=messages),
        ...     on_chunk=print,
        ... )
        >>> registry.cancel(handle.id)
    """

    def __init__(self, metrics_hook: MetricsHook = NoOpMetricsHook()) -> None:
        self._streams: dict[str, StreamHandle] = {}
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closing: set[asyncio.Task[None]] = set()
        self.metrics_hook = metrics_hook

    def __contains__(self, stream_id: object) -> bool:
        with self._lock:
            return stream_id in self._streams

    def __len__(self) -> int:
        with self._lock:
            return len(self._streams)

    def get(self, stream_id: str) -> StreamHandle | None:
        with self._lock:
            return self._streams.get(stream_id)

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._streams)

    def start(
        self,
        work: Work,
        *,
        stream_id: str | None = None,
        on_chunk: ChunkCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> StreamHandle:
        """Start a stream, replacing any live stream with the same id.

        ``work`` receives the stream's cancel token and returns the async
        iterable of chunks to deliver to ``on_chunk``.
        """
        loop = asyncio.get_running_loop()
        self._loop = loop
        handle = StreamHandle(id=stream_id or uuid.uuid4().hex)

        with self._lock:
            previous = self._streams.get(handle.id)
            self._streams[handle.id] = handle
            active = len(self._streams)

        if previous is not None:
            logger.info("Replacing live stream: %s", handle.id)
            self._leave(previous, StreamState.CANCELLED)
            self._signal(previous)

        handle.task = loop.create_task(
            self._run(handle, work, on_chunk, on_complete, on_error),
            name=f"stream:{handle.id}",
        )
        self.metrics_hook.increment(names.STREAMS_STARTED_TOTAL)
        self.metrics_hook.record_gauge(names.STREAMS_ACTIVE, active)
        logger.debug("Started stream: %s", handle.id)
        return handle

    def cancel(self, stream_id: str) -> None:
        """Cancel a stream and drop it from the registry. No-op if unknown."""
        handle = self.get(stream_id)
        if handle is None:
            logger.debug("Cancel ignored, stream not found: %s", stream_id)
            return

        logger.info("Cancelling stream: %s", stream_id)
        self._leave(handle, StreamState.CANCELLED)
        self._signal(handle)

    def cancel_all(self) -> None:
        """Cancel every registered stream and clear the registry."""
        with self._lock:
            handles = list(self._streams.values())

        if handles:
            logger.info("Cancelling %d streams", len(handles))
        for handle in handles:
            self._leave(handle, StreamState.CANCELLED)
            self._signal(handle)

    async def aclose(self) -> None:
        """Cancel everything and wait for the cancelled tasks to unwind."""
        self.cancel_all()
        pending = list(self._closing)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _signal(self, handle: StreamHandle) -> None:
        handle.token.cancel()
        task = handle.task
        loop = self._loop
        if task is None or loop is None:
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._cancel_task(task)
        else:
            loop.call_soon_threadsafe(self._cancel_task, task)

    def _cancel_task(self, task: "asyncio.Task[None]") -> None:
        if task.done():
            return
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
        task.cancel()

    def _leave(self, handle: StreamHandle, state: StreamState) -> bool:
        """Move a handle into a terminal state and unregister it.

        Returns False when the handle was already terminal.
        """
        with self._lock:
            if handle.state.is_terminal:
                return False
            handle.state = state
            if self._streams.get(handle.id) is handle:
                del self._streams[handle.id]

        elapsed_ms = 1000 * (monotonic() - handle.started_at)
        self.metrics_hook.record_latency(
            names.STREAM_DURATION, elapsed_ms, labels={"state": state.value}
        )
        counter = {
            StreamState.COMPLETED: names.STREAMS_COMPLETED_TOTAL,
            StreamState.FAILED: names.STREAMS_FAILED_TOTAL,
            StreamState.CANCELLED: names.STREAMS_CANCELLED_TOTAL,
        }[state]
        self.metrics_hook.increment(counter)
        logger.debug(
            "Stream %s finished: state=%s, latency=%.0fms",
            handle.id,
            state.value,
            elapsed_ms,
        )
        return True

    async def _run(
        self,
        handle: StreamHandle,
        work: Work,
        on_chunk: ChunkCallback | None,
        on_complete: CompleteCallback | None,
        on_error: ErrorCallback | None,
    ) -> None:
        token = handle.token
        try:
            stream = work(token)
            try:
                async for chunk in stream:
                    if token.is_cancelled:
                        break
                    if on_chunk is not None:
                        await _invoke(on_chunk, chunk)
            finally:
                # async generators abandoned mid-iteration are not closed by `break`
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
        except asyncio.CancelledError:
            self._leave(handle, StreamState.CANCELLED)
            raise
        except Exception as exc:
            if token.is_cancelled:
                self._leave(handle, StreamState.CANCELLED)
                return
            if self._leave(handle, StreamState.FAILED):
                logger.warning("Stream %s failed: %s", handle.id, exc)
                if on_error is not None:
                    await self._notify(handle, on_error, exc)
            return

        if token.is_cancelled:
            self._leave(handle, StreamState.CANCELLED)
            return
        if self._leave(handle, StreamState.COMPLETED) and on_complete is not None:
            await self._notify(handle, on_complete)

    async def _notify(
        self, handle: StreamHandle, callback: Callable[..., Any], *args: Any
    ) -> None:
        try:
            await _invoke(callback, *args)
        except Exception:
            logger.exception("Callback failed for stream: %s", handle.id)


async def _invoke(callback: Callable[..., Any], *args: Any) -> Any:
    result = callback(*args)
    if inspect.isawaitable(result):
        return await result
    return result
