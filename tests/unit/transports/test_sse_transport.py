import json
from unittest.mock import MagicMock

import httpx
import pytest

from llm_stream_kit.errors import MalformedChunkError, TransportError
from llm_stream_kit.transports.base import Message, Role
from llm_stream_kit.transports.sse import SSEStreamTransport, parse_sse_line

BASE_URL = "http://localhost:8080/v1"


def _event(content: str | None, finish_reason: str | None = None) -> str:
    payload = {
        "id": "chatcmpl-1",
        "model": "local",
        "choices": [
            {
                "index": 0,
                "delta": {"content": content},
                "finish_reason": finish_reason,
            }
        ],
    }
    return f"data: {json.dumps(payload)}\n\n"


def _body(*events: str) -> str:
    return "".join(events)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(transport: SSEStreamTransport) -> list[str]:
    return [
        text
        async for text in transport.stream(
            messages=[Message(role=Role.USER, content="Hi")]
        )
    ]


class TestParseSSELine:
    def test_data_line(self) -> None:
        chunk = parse_sse_line(_event("Hello").strip())

        assert chunk is not None
        assert chunk.choices[0].delta.content == "Hello"

    @pytest.mark.parametrize("line", ["", ": keep-alive", "event: ping", "id: 7"])
    def test_non_data_lines_ignored(self, line: str) -> None:
        assert parse_sse_line(line) is None

    def test_unknown_fields_ignored(self) -> None:
        line = 'data: {"choices": [{"delta": {"content": "x", "extra": 1}}], "usage": {}}'

        chunk = parse_sse_line(line)

        assert chunk is not None
        assert chunk.choices[0].delta.content == "x"

    def test_invalid_json(self) -> None:
        with pytest.raises(MalformedChunkError) as exc_info:
            parse_sse_line("data: {not json")

        assert exc_info.value.payload == "{not json"

    def test_wrong_shape(self) -> None:
        with pytest.raises(MalformedChunkError):
            parse_sse_line('data: {"choices": [{"index": 0}]}')

    def test_error_payload(self) -> None:
        with pytest.raises(TransportError, match="overloaded"):
            parse_sse_line('data: {"error": {"message": "overloaded"}}')


class TestSSEStreamTransport:
    @pytest.mark.asyncio
    async def test_streams_until_done(self) -> None:
        body = _body(
            _event("Hel"),
            ": keep-alive\n\n",
            _event("lo"),
            _event(None, finish_reason="stop"),
            "data: [DONE]\n\n",
            _event("after done"),
        )
        client = _client(lambda request: httpx.Response(200, text=body))
        transport = SSEStreamTransport(BASE_URL, "local", client=client)

        assert await _collect(transport) == ["Hel", "lo"]
        assert not client.is_closed

    @pytest.mark.asyncio
    async def test_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="data: [DONE]\n\n")

        transport = SSEStreamTransport(
            BASE_URL + "/", "local", api_key="sk-test", client=_client(handler)
        )

        await _collect(transport)

        request = seen[0]
        assert str(request.url) == "http://localhost:8080/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert request.headers["Accept"] == "text/event-stream"
        body = json.loads(request.content)
        assert body["stream"] is True
        assert body["model"] == "local"
        assert body["messages"] == [{"role": "user", "content": "Hi"}]
        assert "max_tokens" not in body

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        metrics_hook = MagicMock()
        client = _client(lambda request: httpx.Response(401, text="bad key"))
        transport = SSEStreamTransport(
            BASE_URL, "local", max_retries=3, metrics_hook=metrics_hook, client=client
        )

        with pytest.raises(TransportError) as exc_info:
            await _collect(transport)

        assert exc_info.value.status_code == 401
        counters = [c.args[0] for c in metrics_hook.increment.call_args_list]
        assert "transport_errors_total" in counters

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400, text="bad request")

        transport = SSEStreamTransport(
            BASE_URL, "local", max_retries=3, client=_client(handler)
        )

        with pytest.raises(TransportError):
            await _collect(transport)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_server_error_retried(self) -> None:
        responses = [
            httpx.Response(503, text="busy"),
            httpx.Response(200, text=_body(_event("ok"), "data: [DONE]\n\n")),
        ]
        transport = SSEStreamTransport(
            BASE_URL,
            "local",
            max_retries=2,
            client=_client(lambda request: responses.pop(0)),
        )

        assert await _collect(transport) == ["ok"]

    @pytest.mark.asyncio
    async def test_malformed_chunk_mid_stream(self) -> None:
        body = _body(_event("partial"), "data: {oops\n\n")
        transport = SSEStreamTransport(
            BASE_URL,
            "local",
            client=_client(lambda request: httpx.Response(200, text=body)),
        )

        received: list[str] = []
        with pytest.raises(MalformedChunkError):
            async for text in transport.stream(
                messages=[Message(role=Role.USER, content="Hi")]
            ):
                received.append(text)

        assert received == ["partial"]

    @pytest.mark.asyncio
    async def test_chunk_count_recorded(self) -> None:
        metrics_hook = MagicMock()
        body = _body(_event("a"), _event("b"), _event("c"), "data: [DONE]\n\n")
        transport = SSEStreamTransport(
            BASE_URL,
            "local",
            metrics_hook=metrics_hook,
            client=_client(lambda request: httpx.Response(200, text=body)),
        )

        await _collect(transport)

        metrics_hook.increment.assert_any_call(
            "transport_chunks_total",
            3,
            labels={"provider": "sse", "model": "local"},
        )
