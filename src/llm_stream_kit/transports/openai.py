# src/llm_stream_kit/transports/openai.py

import logging
from collections.abc import AsyncIterator
from time import monotonic
from typing import Any

from openai import NOT_GIVEN, AsyncOpenAI, OpenAIError
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

from .base import ChunkSource, Message

logger = logging.getLogger(__name__)


class OpenAIStreamTransport(ChunkSource):
    """Streams chat completions from OpenAI.

    Stateless. Transport-only retries on opening the stream.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        max_retries: int = 3,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
        client: AsyncOpenAI | None = None,
    ):
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)
        self._model = model
        self._max_retries = max_retries
        self.metrics_hook = metrics_hook
        logger.info(
            "Initialized OpenAIStreamTransport with model=%s, timeout=%s",
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
        labels = {"provider": "openai", "model": self._model}

        logger.debug(
            "Opening OpenAI stream: model=%s, messages=%d",
            self._model,
            len(messages),
        )
        self.metrics_hook.increment(names.TRANSPORT_REQUESTS_TOTAL, labels=labels)

        try:
            raw = await self._open_stream(
                messages=[{"role": m.role.value, "content": m.content} for m in messages],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError:
            self.metrics_hook.increment(names.TRANSPORT_ERRORS_TOTAL, labels=labels)
            raise

        count = 0
        try:
            async for chunk in raw:
                content = self._extract_content(chunk)
                if not content:
                    continue

                if count == 0:
                    self.metrics_hook.record_latency(
                        names.TRANSPORT_FIRST_CHUNK_LATENCY,
                        1000 * (monotonic() - start),
                        labels=labels,
                    )
                count += 1
                yield content
        except (OpenAIError, MalformedChunkError):
            self.metrics_hook.increment(names.TRANSPORT_ERRORS_TOTAL, labels=labels)
            raise
        finally:
            self.metrics_hook.increment(
                names.TRANSPORT_CHUNKS_TOTAL, count, labels=labels
            )
            await raw.close()

        logger.info(
            "OpenAI stream finished: chunks=%d, latency=%.0fms",
            count,
            1000 * (monotonic() - start),
        )

    async def _open_stream(
        self,
        *,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int | None,
    ) -> Any:
        """Open the OpenAI stream with transport-only retries."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
            retry=retry_if_exception_type(OpenAIError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=temperature,
                    max_tokens=max_tokens if max_tokens else NOT_GIVEN,
                    stream=True,
                )

    def _extract_content(self, chunk: Any) -> str | None:
        """Pull the text delta out of a stream chunk.

        Chunks without choices (the usage trailer) carry no text.
        """
        choices = getattr(chunk, "choices", None)
        if choices is None:
            raise MalformedChunkError("OpenAI stream chunk has no choices", repr(chunk))
        if not choices:
            return None

        delta = getattr(choices[0], "delta", None)
        if delta is None:
            raise MalformedChunkError("OpenAI stream choice has no delta", repr(chunk))
        return delta.content
