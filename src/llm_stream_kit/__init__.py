# Errors
from .errors import (
    CircuitOpenError,
    MalformedChunkError,
    StreamKitError,
    TransportError,
)

# Observability
from .observability import LoggingMetricsHook, MetricsHook, NoOpMetricsHook

# Resilience
from .resilience import (
    CircuitBreaker,
    CircuitState,
    RetryConfig,
    is_transient_error,
    retry_async,
)

# Streaming
from .streaming import (
    CancelToken,
    ChunkAggregator,
    StreamConfig,
    StreamHandle,
    StreamPipeline,
    StreamRegistry,
    StreamState,
    ThrottledEmitter,
)

# Transports
from .transports import (
    ChunkSource,
    Message,
    Role,
    TransportConfig,
    create_transport,
)

__all__ = [
    # Errors
    "CircuitOpenError",
    "MalformedChunkError",
    "StreamKitError",
    "TransportError",
    # Observability
    "LoggingMetricsHook",
    "MetricsHook",
    "NoOpMetricsHook",
    # Resilience
    "CircuitBreaker",
    "CircuitState",
    "RetryConfig",
    "is_transient_error",
    "retry_async",
    # Streaming
    "CancelToken",
    "ChunkAggregator",
    "StreamConfig",
    "StreamHandle",
    "StreamPipeline",
    "StreamRegistry",
    "StreamState",
    "ThrottledEmitter",
    # Transports
    "ChunkSource",
    "Message",
    "Role",
    "TransportConfig",
    "create_transport",
]
