# src/llm_stream_kit/streaming/pipeline.py

import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from typing import Any

from llm_stream_kit.observability import names
from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook

from .aggregator import ChunkAggregator
from .config import StreamConfig
from .registry import (
    CancelToken,
    ChunkCallback,
    CompleteCallback,
    ErrorCallback,
    StreamHandle,
    StreamRegistry,
    Work,
)
from .throttle import ThrottledEmitter

logger = logging.getLogger(__name__)


class StreamPipeline:
    """Feeds one stream through an aggregator and a throttled emitter.

    ``on_update`` receives coalesced text at most once per
    ``config.update_interval``. Finalized units are collected on the
    aggregator. One pipeline serves one stream run.

    Example:
        >>> pipeline = StreamPipeline(on_update=view.append_text)
        >>> handle = pipeline.start(
        ...     registry,
        ...     lambda token: transport.stream(messages=messages),
        ...     stream_id="chat",
        ... )
    """

    def __init__(
        self,
        on_update: Callable[[str], Any],
        config: StreamConfig = StreamConfig(),
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        self._on_update = on_update
        self._token: CancelToken | None = None
        self.config = config
        self.metrics_hook = metrics_hook
        self.aggregator = ChunkAggregator(
            delimiter=config.delimiter,
            keep_empty=config.keep_empty,
            metrics_hook=metrics_hook,
        )
        self.emitter = ThrottledEmitter(
            self._deliver,
            interval=config.update_interval,
            metrics_hook=metrics_hook,
        )

    @property
    def units(self) -> list[str]:
        return self.aggregator.units

    def throughput(self) -> float:
        return self.aggregator.throughput()

    def wrap(self, source: Work) -> Work:
        """Return registry work that routes ``source`` through the pipeline."""

        def work(token: CancelToken) -> AsyncIterable[Any]:
            return self._pump(source(token), token)

        return work

    def start(
        self,
        registry: StreamRegistry,
        source: Work,
        *,
        stream_id: str | None = None,
        on_chunk: ChunkCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> StreamHandle:
        return registry.start(
            self.wrap(source),
            stream_id=stream_id,
            on_chunk=on_chunk,
            on_complete=on_complete,
            on_error=on_error,
        )

    async def _pump(
        self, chunks: AsyncIterable[Any], token: CancelToken
    ) -> AsyncIterator[Any]:
        self._token = token
        flushed = False
        try:
            async for chunk in chunks:
                if token.is_cancelled:
                    break
                self.aggregator.ingest(chunk)
                self.emitter.ingest(chunk)
                yield chunk

            if not token.is_cancelled:
                self.aggregator.finalize()
                flushed = True
                await self.emitter.finish()
        finally:
            try:
                if not flushed:
                    await self._settle(token)
            finally:
                aclose = getattr(chunks, "aclose", None)
                if aclose is not None:
                    await aclose()

        if not flushed:
            return
        self.metrics_hook.record_gauge(
            names.STREAM_THROUGHPUT, self.aggregator.throughput()
        )
        logger.info(
            "Stream pipeline finished: units=%d, throughput=%.1f/s",
            self.aggregator.emitted_count,
            self.aggregator.throughput(),
        )

    async def _settle(self, token: CancelToken) -> None:
        """Stop the emitter after an early exit.

        A failure (including a consumer closing the stream) still delivers
        what arrived before it. A cancellation delivers nothing more.
        """
        if token.is_cancelled:
            self.emitter.cancel()
            return
        await self.emitter.finish()

    def _deliver(self, text: str) -> Any:
        if self._token is not None and self._token.is_cancelled:
            return None
        return self._on_update(text)
