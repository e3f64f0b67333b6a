# src/llm_stream_kit/transports/config.py

from dataclasses import dataclass
from typing import Literal

Provider = Literal["openai", "anthropic", "sse"]


@dataclass(frozen=True)
class TransportConfig:
    """Configuration for streaming transports.

    Immutable. Explicit. No magic defaults from environment.
    """

    provider: Provider
    model: str
    api_key: str | None = None  # Falls back to provider's env var
    base_url: str | None = None  # Required for provider="sse"
    timeout: float = 30.0
    max_retries: int = 3
