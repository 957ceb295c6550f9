"""Tests for the streaming relay state machine."""

import httpx
import pytest
import respx

from chatrelay.services.llm import (
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    LLMErrorClass,
    RelayState,
    StreamingRelay,
    Turn,
)
from chatrelay.services.llm.openai_adapter import OpenAIAdapter
from tests.helpers import ChunkedStream, collect, load_stream_fixture, split_every, sse_body

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
TURNS = [Turn(role="user", content="Hello!")]


def delta_frame(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


async def run_relay(client: httpx.AsyncClient, relay: StreamingRelay | None = None) -> list:
    relay = relay or StreamingRelay(client)
    return await collect(relay.stream(OpenAIAdapter(), TURNS, model="gpt-4o", api_key="sk-test"))


class TestStreamingRelay:
    @pytest.mark.asyncio
    @respx.mock
    async def test_success_ends_with_done(self, httpx_client):
        respx.post(OPENAI_URL).respond(200, content=load_stream_fixture("openai"))
        relay = StreamingRelay(httpx_client)

        events = await run_relay(httpx_client, relay)

        assert [type(e) for e in events] == [ContentEvent, ContentEvent, ContentEvent, DoneEvent]
        assert relay.state == RelayState.COMPLETED

    @pytest.mark.asyncio
    @respx.mock
    async def test_request_carries_adapter_headers_and_body(self, httpx_client):
        route = respx.post(OPENAI_URL).respond(200, content=sse_body("[DONE]"))

        await run_relay(httpx_client)

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert b'"stream": true' in request.content

    @pytest.mark.parametrize("size", [1, 5, 17])
    @pytest.mark.asyncio
    @respx.mock
    async def test_split_chunks_reassemble_identically(self, httpx_client, size):
        data = load_stream_fixture("openai")
        respx.post(OPENAI_URL).respond(200, stream=ChunkedStream(split_every(data, size)))

        events = await run_relay(httpx_client)

        text = "".join(e.text for e in events if isinstance(e, ContentEvent))
        assert text == "Hello! How can I help?"

    @pytest.mark.asyncio
    @respx.mock
    async def test_provider_500_yields_single_error(self, httpx_client):
        respx.post(OPENAI_URL).respond(500, json={"error": {"message": "Internal error"}})
        relay = StreamingRelay(httpx_client)

        events = await run_relay(httpx_client, relay)

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert "500" in events[0].message
        assert events[0].code == LLMErrorClass.PROVIDER.value
        assert relay.state == RelayState.FAILED

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_error_body(self, httpx_client):
        respx.post(OPENAI_URL).respond(502, text="<html>Bad Gateway</html>")

        events = await run_relay(httpx_client)

        assert events == [ErrorEvent(message="API returned error: 502", code="E_PROVIDER")]

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_yields_single_error(self, httpx_client):
        respx.post(OPENAI_URL).mock(side_effect=httpx.ConnectError("Connection refused"))

        events = await run_relay(httpx_client)

        assert len(events) == 1
        assert events[0].code == LLMErrorClass.TRANSPORT.value
        assert events[0].message.startswith("API request failed")

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_is_transport_error(self, httpx_client):
        respx.post(OPENAI_URL).mock(side_effect=httpx.ReadTimeout("timed out"))

        events = await run_relay(httpx_client)

        assert events == [
            ErrorEvent(message="API request failed: request timed out", code="E_TRANSPORT")
        ]

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_frame_skipped(self, httpx_client, log_sink):
        body = sse_body(delta_frame("a")) + b"data: {not json\n\n" + sse_body(delta_frame("b"))
        respx.post(OPENAI_URL).respond(200, content=body)
        relay = StreamingRelay(httpx_client)

        events = await run_relay(httpx_client, relay)

        assert [e.text for e in events if isinstance(e, ContentEvent)] == ["a", "b"]
        assert isinstance(events[-1], DoneEvent)
        assert relay.malformed_frames == 1
        assert any(e["event"] == "relay.frame.malformed" for e in log_sink)

    @pytest.mark.asyncio
    @respx.mock
    async def test_in_band_error_after_content_keeps_content(self, httpx_client):
        body = sse_body(delta_frame("partial"), {"error": {"message": "overloaded"}})
        respx.post(OPENAI_URL).respond(200, content=body)

        events = await run_relay(httpx_client)

        assert events[0] == ContentEvent(text="partial")
        assert events[1] == ErrorEvent(message="overloaded", code="E_PROVIDER")
        assert len(events) == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_close_without_terminator_completes(self, httpx_client):
        body = b'data: {"choices":[{"delta":{"content":"tail"}}]}'
        respx.post(OPENAI_URL).respond(200, content=body)

        events = await run_relay(httpx_client)

        assert events == [ContentEvent(text="tail"), DoneEvent()]

    @pytest.mark.asyncio
    @respx.mock
    async def test_comments_and_keepalives_ignored(self, httpx_client):
        body = b": keepalive\n\n" + b"data: \n\n" + sse_body(delta_frame("x"), "[DONE]")
        respx.post(OPENAI_URL).respond(200, content=body)

        events = await run_relay(httpx_client)

        assert events == [ContentEvent(text="x"), DoneEvent()]

    @pytest.mark.asyncio
    @respx.mock
    async def test_lifecycle_logged_without_content(self, httpx_client, log_sink):
        respx.post(OPENAI_URL).respond(200, content=load_stream_fixture("openai"))

        await run_relay(httpx_client)

        names = [e["event"] for e in log_sink]
        assert names[0] == "relay.stream.started"
        assert "relay.stream.completed" in names
        for event in log_sink:
            assert "content" not in event
            assert "Hello" not in str(event)
