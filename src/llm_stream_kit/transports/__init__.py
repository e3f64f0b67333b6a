# src/llm_stream_kit/transports/__init__.py

"""Streaming transports for llm-stream-kit.

Each transport turns one chat request into an async iterator of text
fragments, ready to feed a StreamRegistry or StreamPipeline.

Design principles:
- Stateless: Every call receives the full message list
- Text only: Provider objects never escape the adapter
- Transport retries only: Opening a stream retries; a broken stream is
  reported, not resumed

Example:
    >>> from llm_stream_kit.transports import (
    ...     Message, Role, TransportConfig, create_transport,
    ... )
    >>>
    >>> transport = create_transport(
    ...     TransportConfig(provider="openai", model="gpt-4o-mini")
    ... )
    >>> async for text in transport.stream(
    ...     messages=[Message(role=Role.USER, content="Hello!")]
    ... ):
    ...     print(text, end="")
"""

from .base import ChunkSource, Message, Role
from .config import TransportConfig
from .factory import create_transport

__all__ = [
    # Factory
    "create_transport",
    # Protocol
    "ChunkSource",
    # Config
    "TransportConfig",
    # Types
    "Message",
    "Role",
]
