"""Tests for the chat relay entry point.

Covers input validation, configuration lookup, mode dispatch and the
request lifecycle logs. Provider HTTP is mocked with respx.
"""

import asyncio
import json

import pytest
import respx

from chatrelay.services.chat import build_chat_request, stream_chat, stream_chat_sse
from chatrelay.services.llm import (
    ConfigurationError,
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    ProviderRegistry,
    StatusEvent,
    Turn,
    ValidationError,
)
from chatrelay.services.llm.openai_adapter import OpenAIAdapter
from chatrelay.services.llm.types import ChatMode
from chatrelay.services.page_context import CONTEXT_HEADER
from chatrelay.services.redact import hash_text
from tests.helpers import SleepRecorder, collect, load_fixture, load_stream_fixture, make_settings

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
MISTRAL_AGENT_URL = "https://api.mistral.ai/v1/agents/completions"
ASSISTANT_BASE = "https://api.openai.com/v1"


async def run_chat(settings, registry, httpx_client, message="Hello!", **kwargs) -> list:
    kwargs.setdefault("history", [])
    kwargs.setdefault("context", None)
    return await collect(
        stream_chat(
            message=message,
            client=httpx_client,
            registry=registry,
            settings=settings,
            sleep=SleepRecorder(),
            **kwargs,
        )
    )


class TestBuildChatRequest:
    def test_blank_message_rejected(self, settings):
        config = settings.provider_config("openai")
        with pytest.raises(ValidationError, match="Message required"):
            build_chat_request(config, "   ", [], None, max_context_chars=8000)

    def test_missing_key_rejected(self):
        config = make_settings(OPENAI_API_KEY=None).provider_config("openai")
        with pytest.raises(ConfigurationError, match="API key required"):
            build_chat_request(config, "hi", [], None, max_context_chars=8000)

    def test_assistant_mode_requires_assistant_id(self):
        config = make_settings(OPENAI_USE_ASSISTANT=True).provider_config("openai")
        with pytest.raises(ConfigurationError, match="Assistant ID required"):
            build_chat_request(config, "hi", [], None, max_context_chars=8000)

    def test_context_merged_into_definition(self):
        config = make_settings(OPENAI_DEFINITION="Be brief.").provider_config("openai")

        req = build_chat_request(config, "hi", [], "Page text.", max_context_chars=8000)

        assert req.definition.startswith("Be brief.\n\n" + CONTEXT_HEADER)
        assert req.mode == ChatMode.DIRECT


class TestStreamChatRejections:
    @pytest.mark.asyncio
    @respx.mock
    async def test_blank_message_makes_no_outbound_call(self, settings, registry, httpx_client):
        events = await run_chat(settings, registry, httpx_client, message="")

        assert events == [ErrorEvent(message="Message required", code="E_VALIDATION")]
        assert len(respx.calls) == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_null_message_reported_in_band(self, settings, registry, httpx_client):
        events = await run_chat(settings, registry, httpx_client, message=None)

        assert events == [ErrorEvent(message="Message required", code="E_VALIDATION")]
        assert len(respx.calls) == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_key_makes_no_outbound_call(self, registry, httpx_client):
        settings = make_settings(ANTHROPIC_API_KEY=None)

        events = await run_chat(settings, registry, httpx_client, provider_id="anthropic")

        assert events == [ErrorEvent(message="API key required", code="E_CONFIGURATION")]
        assert len(respx.calls) == 0

    @pytest.mark.asyncio
    async def test_unknown_provider(self, settings, registry, httpx_client):
        events = await run_chat(settings, registry, httpx_client, provider_id="cohere")

        assert events == [ErrorEvent(message="Unknown provider: cohere", code="E_CONFIGURATION")]

    @pytest.mark.asyncio
    async def test_rejection_is_logged(self, settings, registry, httpx_client, log_sink):
        await run_chat(settings, registry, httpx_client, message="")

        rejected = [e for e in log_sink if e["event"] == "chat.request.rejected"]
        assert rejected[0]["error_class"] == "E_VALIDATION"
        assert rejected[0]["provider"] == "openai"


class TestStreamChatDirect:
    @pytest.mark.asyncio
    @respx.mock
    async def test_direct_stream(self, settings, registry, httpx_client):
        respx.post(OPENAI_URL).respond(200, content=load_stream_fixture("openai"))

        events = await run_chat(settings, registry, httpx_client)

        text = "".join(e.text for e in events if isinstance(e, ContentEvent))
        assert text == "Hello! How can I help?"
        assert events[-1] == DoneEvent()

    @pytest.mark.asyncio
    @respx.mock
    async def test_history_and_definition_sent(self, registry, httpx_client):
        settings = make_settings(OPENAI_DEFINITION="Be brief.", OPENAI_MODEL="gpt-4o")
        route = respx.post(OPENAI_URL).respond(200, content=b"data: [DONE]\n\n")

        await run_chat(
            settings,
            registry,
            httpx_client,
            message="bye",
            history=[Turn("user", "hi"), Turn("assistant", "hello")],
        )

        body = json.loads(route.calls.last.request.content)
        assert body["model"] == "gpt-4o"
        assert body["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "bye"},
        ]

    @pytest.mark.asyncio
    @respx.mock
    async def test_provider_failure_ends_with_one_error(self, settings, registry, httpx_client):
        respx.post(OPENAI_URL).respond(429, json={"error": {"message": "Rate limited"}})

        events = await run_chat(settings, registry, httpx_client)

        assert len(events) == 1
        assert events[0].code == "E_PROVIDER"
        assert "429" in events[0].message

    @pytest.mark.asyncio
    @respx.mock
    async def test_lifecycle_logs(self, settings, registry, httpx_client, log_sink):
        respx.post(OPENAI_URL).respond(200, content=load_stream_fixture("openai"))

        await run_chat(settings, registry, httpx_client)

        names = [e["event"] for e in log_sink]
        assert names[0] == "chat.request.accepted"
        assert log_sink[0]["message_sha256"] == hash_text("Hello!")
        finished = [e for e in log_sink if e["event"] == "chat.request.finished"]
        assert finished[0]["outcome"] == "complete"
        assert finished[0]["output_chars"] == len("Hello! How can I help?")
        assert all("Hello" not in str(e) for e in log_sink)


class TestStreamChatAssistantMode:
    @pytest.mark.asyncio
    @respx.mock
    async def test_mistral_agent_streams_through_relay(self, registry, httpx_client):
        settings = make_settings(MISTRAL_USE_ASSISTANT=True, MISTRAL_ASSISTANT_ID="ag:1234")
        route = respx.post(MISTRAL_AGENT_URL).respond(
            200, content=load_stream_fixture("mistral")
        )

        events = await run_chat(settings, registry, httpx_client, provider_id="mistral")

        assert json.loads(route.calls.last.request.content)["agent_id"] == "ag:1234"
        assert "".join(e.text for e in events if isinstance(e, ContentEvent)) == "Bonjour !"
        assert events[-1] == DoneEvent()

    @pytest.mark.asyncio
    @respx.mock
    async def test_openai_assistant_run(self, registry, httpx_client):
        settings = make_settings(OPENAI_USE_ASSISTANT=True, OPENAI_ASSISTANT_ID="asst_abc123")
        thread = f"{ASSISTANT_BASE}/threads/thread_abc123"
        respx.post(f"{ASSISTANT_BASE}/threads").respond(200, json={"id": "thread_abc123"})
        respx.post(f"{thread}/messages").respond(200, json={"id": "msg_1"})
        respx.post(f"{thread}/runs").respond(200, json={"id": "run_abc123", "status": "queued"})
        respx.get(f"{thread}/runs/run_abc123").respond(200, json={"status": "completed"})
        respx.get(f"{thread}/messages").respond(
            200, json=load_fixture("openai_assistant", "latest_message.json")
        )

        events = await run_chat(settings, registry, httpx_client)

        assert events == [
            StatusEvent(note="processing"),
            ContentEvent(text="The answer is 42."),
            DoneEvent(),
        ]

    @pytest.mark.asyncio
    @respx.mock
    async def test_assistant_mode_without_assistant_adapter(self, httpx_client):
        settings = make_settings(OPENAI_USE_ASSISTANT=True, OPENAI_ASSISTANT_ID="asst_abc123")
        registry = ProviderRegistry()
        registry.register(OpenAIAdapter())

        events = await run_chat(settings, registry, httpx_client)

        assert events == [
            ErrorEvent(
                message="Assistant mode is not supported for openai", code="E_CONFIGURATION"
            )
        ]
        assert len(respx.calls) == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_close_mid_poll_stops_polling(self, registry, httpx_client, log_sink):
        settings = make_settings(
            OPENAI_USE_ASSISTANT=True,
            OPENAI_ASSISTANT_ID="asst_abc123",
            ASSISTANT_POLL_INTERVAL_MS=10,
            ASSISTANT_POLL_MAX_ATTEMPTS=1000,
        )
        thread = f"{ASSISTANT_BASE}/threads/thread_abc123"
        respx.post(f"{ASSISTANT_BASE}/threads").respond(200, json={"id": "thread_abc123"})
        respx.post(f"{thread}/messages").respond(200, json={"id": "msg_1"})
        respx.post(f"{thread}/runs").respond(200, json={"id": "run_abc123", "status": "queued"})
        poll = respx.get(f"{thread}/runs/run_abc123").respond(200, json={"status": "in_progress"})

        events = stream_chat(
            message="Hello!",
            history=[],
            context=None,
            client=httpx_client,
            registry=registry,
            settings=settings,
        )
        assert await events.__anext__() == StatusEvent(note="processing")
        await asyncio.sleep(0.05)
        await events.aclose()

        polls_at_close = poll.call_count
        await asyncio.sleep(0.05)
        assert poll.call_count == polls_at_close
        finished = [e for e in log_sink if e["event"] == "chat.request.finished"]
        assert finished[0]["outcome"] == "disconnected"


class TestStreamChatSSE:
    @pytest.mark.asyncio
    @respx.mock
    async def test_frames_without_done_frame(self, settings, registry, httpx_client):
        respx.post(OPENAI_URL).respond(
            200, content=b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n\n'
        )

        frames = await collect(
            stream_chat_sse(
                message="Hello!",
                history=[],
                context=None,
                client=httpx_client,
                registry=registry,
                settings=settings,
            )
        )

        assert frames == ['data: {"content": "Hi"}\n\n']
