# src/llm_stream_kit/transports/sse.py

import json
import logging
from collections.abc import AsyncIterator
from time import monotonic
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from llm_stream_kit.errors import MalformedChunkError, TransportError
from llm_stream_kit.observability import names
from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook
from llm_stream_kit.resilience.backoff import is_transient_error

from .base import ChunkSource, Message

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class StreamDelta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | None = None


class StreamChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    delta: StreamDelta
    finish_reason: str | None = None


class ChatStreamChunk(BaseModel):
    """One decoded ``data:`` payload of an OpenAI-compatible stream."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    model: str | None = None
    choices: list[StreamChoice] = Field(default_factory=list)


def parse_sse_line(line: str) -> ChatStreamChunk | None:
    """Decode one server-sent-events line.

    Returns None for lines that carry no chunk (blank lines, comments,
    non-data fields). The ``[DONE]`` sentinel is handled by the caller.

    Raises:
        TransportError: The payload is an error object.
        MalformedChunkError: The payload is not valid JSON or not a chunk.
    """
    if not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX) :].strip()
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise MalformedChunkError(f"Invalid JSON in stream: {exc}", data) from exc

    if isinstance(payload, dict) and payload.get("error"):
        error = payload["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise TransportError(f"Upstream error: {message}")

    try:
        return ChatStreamChunk.model_validate(payload)
    except ValidationError as exc:
        raise MalformedChunkError(f"Unexpected chunk shape: {exc}", data) from exc


class SSEStreamTransport(ChunkSource):
    """Streams chat completions from any OpenAI-compatible endpoint.

    Speaks raw server-sent events over httpx, for servers without an SDK
    (local inference servers, proxies). An injected client is used as-is
    and never closed here; otherwise a client is created per stream.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
        client: httpx.AsyncClient | None = None,
    ):
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._client = client
        self.metrics_hook = metrics_hook
        logger.info(
            "Initialized SSEStreamTransport with url=%s, model=%s, timeout=%s",
            self._url,
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
        labels = {"provider": "sse", "model": self._model}

        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "temperature": temperature,
            "stream": True,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        self.metrics_hook.increment(names.TRANSPORT_REQUESTS_TOTAL, labels=labels)
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        count = 0
        try:
            response = await self._connect(client, payload)
            try:
                async for line in response.aiter_lines():
                    if line.startswith(DATA_PREFIX) and (
                        line[len(DATA_PREFIX) :].strip() == DONE_SENTINEL
                    ):
                        break

                    chunk = parse_sse_line(line)
                    if chunk is None or not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
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
            finally:
                await response.aclose()
        except (httpx.HTTPError, TransportError, MalformedChunkError):
            self.metrics_hook.increment(names.TRANSPORT_ERRORS_TOTAL, labels=labels)
            raise
        finally:
            self.metrics_hook.increment(
                names.TRANSPORT_CHUNKS_TOTAL, count, labels=labels
            )
            if self._client is None:
                await client.aclose()

        logger.info(
            "SSE stream finished: chunks=%d, latency=%.0fms",
            count,
            1000 * (monotonic() - start),
        )

    async def _connect(
        self, client: httpx.AsyncClient, payload: dict[str, Any]
    ) -> httpx.Response:
        """Send the request and check the status, with transport-only retries."""
        headers = {"Accept": "text/event-stream"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
            retry=retry_if_exception(is_transient_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                request = client.build_request(
                    "POST", self._url, json=payload, headers=headers
                )
                response = await client.send(request, stream=True)
                if response.is_error:
                    body = await response.aread()
                    await response.aclose()
                    raise TransportError(
                        f"Stream request failed with HTTP {response.status_code}: "
                        f"{body[:200]!r}",
                        status_code=response.status_code,
                    )
                return response
