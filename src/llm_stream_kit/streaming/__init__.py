# src/llm_stream_kit/streaming/__init__.py

"""Streaming response aggregation and cancellation core.

- ChunkAggregator: buffers fragments, emits finalized units, tracks throughput
- ThrottledEmitter: forwards buffered text at most once per interval
- StreamRegistry: runs named, independently cancellable streams
- StreamPipeline: wires a chunk source through all three

Example:
    >>> from llm_stream_kit.streaming import StreamPipeline, StreamRegistry
    >>>
    >>> registry = StreamRegistry()
    >>> pipeline = StreamPipeline(on_update=print)
    >>> pipeline.start(
    ...     registry,
    ...     lambda token: transport.stream(messages=messages),
    ...     stream_id="chat",
    ... )
    >>> registry.cancel("chat")
"""

from .aggregator import ChunkAggregator, ChunkBuffer
from .config import StreamConfig
from .pipeline import StreamPipeline
from .registry import CancelToken, StreamHandle, StreamRegistry, StreamState
from .throttle import ThrottledEmitter, ThrottleWindow

__all__ = [
    # Aggregation
    "ChunkAggregator",
    "ChunkBuffer",
    # Throttling
    "ThrottledEmitter",
    "ThrottleWindow",
    # Lifecycle
    "CancelToken",
    "StreamHandle",
    "StreamRegistry",
    "StreamState",
    # Wiring
    "StreamConfig",
    "StreamPipeline",
]
