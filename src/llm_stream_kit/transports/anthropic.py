# src/llm_stream_kit/transports/anthropic.py

import logging
from collections.abc import AsyncIterator
from time import monotonic
from typing import Any

from anthropic import NOT_GIVEN, APIError, AsyncAnthropic
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from llm_stream_kit.errors import MalformedChunkError
from llm_stream_kit.observability import names
from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook

from .base import ChunkSource, Message, Role

logger = logging.getLogger(__name__)


class AnthropicStreamTransport(ChunkSource):
    """Streams messages from Anthropic.

    Stateless. Transport-only retries on opening the stream.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-20250514",
        timeout: float = 30.0,
        max_retries: int = 3,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
        client: AsyncAnthropic | None = None,
    ):
        self._client = client or AsyncAnthropic(api_key=api_key, timeout=timeout)
        self._model = model
        self._max_retries = max_retries
        self.metrics_hook = metrics_hook
        logger.info(
            "Initialized AnthropicStreamTransport with model=%s, timeout=%s",
            model,
            timeout,
        )

    async def stream(
        self,
        *,
        messages: list[Message],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        start = monotonic()
        labels = {"provider": "anthropic", "model": self._model}

        # Anthropic takes the system prompt as a separate parameter
        system_content, non_system = self._extract_system(messages)

        logger.debug(
            "Opening Anthropic stream: model=%s, messages=%d",
            self._model,
            len(messages),
        )
        self.metrics_hook.increment(names.TRANSPORT_REQUESTS_TOTAL, labels=labels)

        try:
            raw = await self._open_stream(
                system=system_content,
                messages=[{"role": m.role.value, "content": m.content} for m in non_system],
                temperature=temperature,
                max_tokens=max_tokens or 4096,  # Anthropic requires max_tokens
            )
        except APIError:
            self.metrics_hook.increment(names.TRANSPORT_ERRORS_TOTAL, labels=labels)
            raise

        count = 0
        try:
            async for event in raw:
                text = self._extract_text(event)
                if not text:
                    continue

                if count == 0:
                    self.metrics_hook.record_latency(
                        names.TRANSPORT_FIRST_CHUNK_LATENCY,
                        1000 * (monotonic() - start),
                        labels=labels,
                    )
                count += 1
                yield text
        except (APIError, MalformedChunkError):
            self.metrics_hook.increment(names.TRANSPORT_ERRORS_TOTAL, labels=labels)
            raise
        finally:
            self.metrics_hook.increment(
                names.TRANSPORT_CHUNKS_TOTAL, count, labels=labels
            )
            await raw.close()

        logger.info(
            "Anthropic stream finished: chunks=%d, latency=%.0fms",
            count,
            1000 * (monotonic() - start),
        )

    async def _open_stream(
        self,
        *,
        system: str | None,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> Any:
        """Open the Anthropic stream with transport-only retries."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
            retry=retry_if_exception_type(APIError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._client.messages.create(
                    model=self._model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=temperature,
                    max_tokens=max_tokens,
                    system=system if system else NOT_GIVEN,
                    stream=True,
                )

    def _extract_system(
        self, messages: list[Message]
    ) -> tuple[str | None, list[Message]]:
        system_content = None
        non_system = []

        for m in messages:
            if m.role == Role.SYSTEM:
                system_content = m.content
            else:
                non_system.append(m)

        return system_content, non_system

    def _extract_text(self, event: Any) -> str | None:
        if getattr(event, "type", None) != "content_block_delta":
            return None

        delta = getattr(event, "delta", None)
        if delta is None:
            raise MalformedChunkError("Anthropic delta event has no delta", repr(event))
        if getattr(delta, "type", None) != "text_delta":
            return None
        return delta.text
