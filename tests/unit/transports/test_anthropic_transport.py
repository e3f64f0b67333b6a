from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from llm_stream_kit.errors import MalformedChunkError
from llm_stream_kit.transports.anthropic import AnthropicStreamTransport
from llm_stream_kit.transports.base import Message, Role


class FakeStream:
    """Stands in for anthropic.AsyncStream."""

    def __init__(self, events: list[object]) -> None:
        self._events = events
        self.closed = False

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> object:
        if not self._events:
            raise StopAsyncIteration
        return self._events.pop(0)

    async def close(self) -> None:
        self.closed = True


def _text_event(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        type="content_block_delta",
        delta=SimpleNamespace(type="text_delta", text=text),
    )


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


class TestAnthropicStreamTransport:
    @pytest.mark.asyncio
    async def test_yields_text_deltas_only(self, client: MagicMock) -> None:
        stream = FakeStream(
            [
                SimpleNamespace(type="message_start"),
                SimpleNamespace(type="content_block_start"),
                _text_event("Hello"),
                SimpleNamespace(
                    type="content_block_delta",
                    delta=SimpleNamespace(type="input_json_delta", partial_json="{"),
                ),
                _text_event(" there"),
                SimpleNamespace(type="message_stop"),
            ]
        )
        client.messages.create = AsyncMock(return_value=stream)
        transport = AnthropicStreamTransport(client=client)

        received = [
            text
            async for text in transport.stream(
                messages=[Message(role=Role.USER, content="Hi")]
            )
        ]

        assert received == ["Hello", " there"]
        assert stream.closed

    @pytest.mark.asyncio
    async def test_system_message_lifted(self, client: MagicMock) -> None:
        client.messages.create = AsyncMock(return_value=FakeStream([]))
        transport = AnthropicStreamTransport(client=client)

        async for _ in transport.stream(
            messages=[
                Message(role=Role.SYSTEM, content="You are helpful."),
                Message(role=Role.USER, content="Hello"),
            ]
        ):
            pass

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "You are helpful."
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]
        assert kwargs["max_tokens"] == 4096
        assert kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_delta_event_without_delta_is_malformed(
        self, client: MagicMock
    ) -> None:
        client.messages.create = AsyncMock(
            return_value=FakeStream([SimpleNamespace(type="content_block_delta")])
        )
        transport = AnthropicStreamTransport(client=client)

        with pytest.raises(MalformedChunkError):
            async for _ in transport.stream(
                messages=[Message(role=Role.USER, content="Hi")]
            ):
                pass

    def test_builds_sdk_client_when_not_injected(self) -> None:
        with patch("llm_stream_kit.transports.anthropic.AsyncAnthropic") as mock_cls:
            AnthropicStreamTransport(api_key="test-key", timeout=5.0)

            mock_cls.assert_called_once_with(api_key="test-key", timeout=5.0)
