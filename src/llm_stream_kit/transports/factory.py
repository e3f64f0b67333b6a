# src/llm_stream_kit/transports/factory.py

from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook

from .base import ChunkSource
from .config import TransportConfig


def create_transport(
    config: TransportConfig,
    metrics_hook: MetricsHook = NoOpMetricsHook(),
) -> ChunkSource:
    """Create a streaming transport from config.

    Args:
        config: Transport configuration specifying provider, model, etc.
        metrics_hook: Optional metrics hook for observability.

    Returns:
        Configured ChunkSource implementation.

    Raises:
        ValueError: If provider is unknown, or base_url is missing for "sse".

    Example:
        >>> config = TransportConfig(provider="openai", model="gpt-4o-mini")
        >>> transport = create_transport(config)
        >>> async for text in transport.stream(messages=[...]):
        ...     print(text, end="")
    """
    if config.provider == "openai":
        from .openai import OpenAIStreamTransport

        return OpenAIStreamTransport(
            api_key=config.api_key,
            model=config.model,
            timeout=config.timeout,
            max_retries=config.max_retries,
            metrics_hook=metrics_hook,
        )

    if config.provider == "anthropic":
        from .anthropic import AnthropicStreamTransport

        return AnthropicStreamTransport(
            api_key=config.api_key,
            model=config.model,
            timeout=config.timeout,
            max_retries=config.max_retries,
            metrics_hook=metrics_hook,
        )

    if config.provider == "sse":
        if not config.base_url:
            raise ValueError("base_url is required for the sse provider")

        from .sse import SSEStreamTransport

        return SSEStreamTransport(
            base_url=config.base_url,
            model=config.model,
            api_key=config.api_key,
            timeout=config.timeout,
            max_retries=config.max_retries,
            metrics_hook=metrics_hook,
        )

    raise ValueError(f"Unknown transport provider: {config.provider}")
