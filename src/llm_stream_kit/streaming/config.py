# src/llm_stream_kit/streaming/config.py

from dataclasses import dataclass


@dataclass(frozen=True)
class StreamConfig:
    """Configuration for stream aggregation and throttling.

    Immutable. Explicit. No magic defaults from environment.
    """

    update_interval: float = 0.1  # Seconds between forwarded emissions
    delimiter: str | None = None  # None splits on any whitespace character
    keep_empty: bool = False  # Keep empty units between consecutive delimiters

    def __post_init__(self) -> None:
        if self.update_interval <= 0:
            raise ValueError("update_interval must be > 0")
        if self.delimiter == "":
            raise ValueError("delimiter must be a non-empty string or None")
