# src/llm_stream_kit/transports/base.py

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from llm_stream_kit.observability.base import MetricsHook


class Role(str, Enum):
    """Message role in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single message in the conversation.

    Immutable. Provider-agnostic.
    """

    role: Role
    content: str


class ChunkSource(Protocol):
    """Protocol for streaming transports.

    Design principles:
    - Stateless: Every call receives the full message list
    - Text only: Yields content fragments, never provider objects
    - Transport retries only: Opening the stream retries on transport
      errors; a stream that fails mid-way is not resumed
    - Injected: Each transport owns an explicitly constructed client
    """

    metrics_hook: MetricsHook

    def stream(
        self,
        *,
        messages: list[Message],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion as text fragments.

        Args:
            messages: Complete conversation history.
            temperature: Sampling temperature (0.0 = deterministic).
            max_tokens: Maximum tokens in response.

        Yields:
            Non-empty text fragments in arrival order.

        Raises:
            Provider or TransportError after retry exhaustion when opening
            the stream; MalformedChunkError for undecodable payloads.
        """
        ...
