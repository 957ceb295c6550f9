"""Chat relay entry point.

stream_chat() serves one inbound chat message as a sequence of canonical
events:

1. Validate input (no outbound call on failure)
2. Read the provider configuration (no outbound call on failure)
3. Merge page context into the definition and assemble turns
4. Dispatch to the streaming relay (direct mode, Mistral agents) or the
   assistant-run state machine (OpenAI assistants)
5. Bridge the producer through a bounded queue to the response writer

Every failure ends the stream with exactly one ErrorEvent; nothing raises
out of here except cancellation when the client disconnects.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import aclosing
from uuid import uuid4

import httpx

from chatrelay.config import ProviderConfig, Settings
from chatrelay.logging import get_logger, set_flow_id, set_provider
from chatrelay.services.llm.assistant_run import AssistantRunner
from chatrelay.services.llm.bridge import bridge_events
from chatrelay.services.llm.errors import ConfigurationError, LLMError, LLMErrorClass, ValidationError
from chatrelay.services.llm.prompt import assemble
from chatrelay.services.llm.registry import ProviderRegistry
from chatrelay.services.llm.relay import StreamingRelay
from chatrelay.services.llm.types import (
    CanonicalEvent,
    ChatMode,
    ChatRequest,
    ContentEvent,
    ErrorEvent,
    Turn,
    format_sse_event,
)
from chatrelay.services.page_context import build_definition
from chatrelay.services.redact import hash_text, safe_kv

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Error processing request"


def build_chat_request(
    config: ProviderConfig,
    message: str | None,
    history: Sequence[Turn],
    context: str | None,
    *,
    max_context_chars: int,
) -> ChatRequest:
    """Validate one inbound message against its provider configuration.

    Raises:
        ValidationError: If the message is missing or blank.
        ConfigurationError: If credentials or the assistant id are missing.
    """
    if not message or not message.strip():
        raise ValidationError("Message required", config.provider)
    if not config.api_key:
        raise ConfigurationError("API key required", config.provider)

    mode = ChatMode.ASSISTANT if config.use_assistant_mode else ChatMode.DIRECT
    if mode == ChatMode.ASSISTANT and not config.assistant_ref:
        raise ConfigurationError("Assistant ID required", config.provider)

    return ChatRequest(
        provider=config.provider,
        model=config.model,
        turns=tuple(history),
        current_message=message,
        mode=mode,
        assistant_ref=config.assistant_ref,
        definition=build_definition(config.definition, context, max_context_chars),
    )


def _dispatch(
    req: ChatRequest,
    *,
    api_key: str,
    client: httpx.AsyncClient,
    registry: ProviderRegistry,
    settings: Settings,
    sleep: Callable[[float], Awaitable[None]],
) -> AsyncIterator[CanonicalEvent]:
    """Pick the execution path for a validated request.

    Raises:
        ConfigurationError: If the provider is unknown or has no assistant mode.
    """
    turns = assemble(req.definition, req.turns, req.current_message)

    relay = StreamingRelay(
        client,
        timeout_s=settings.provider_timeout_s,
        connect_timeout_s=settings.provider_connect_timeout_s,
    )

    if req.mode == ChatMode.DIRECT:
        adapter = registry.resolve(req.provider)
        return relay.stream(adapter, turns, model=req.model, api_key=api_key)

    if not registry.supports_assistant_mode(req.provider):
        raise ConfigurationError(
            f"Assistant mode is not supported for {req.provider}", req.provider
        )

    agent = registry.resolve_agent(req.provider)
    if agent is not None:
        return relay.stream(agent, turns, model=req.assistant_ref, api_key=api_key)

    assistant = registry.resolve_assistant(req.provider)
    runner = AssistantRunner(
        client,
        assistant,
        api_key=api_key,
        poll_interval_s=settings.assistant_poll_interval_s,
        max_attempts=settings.assistant_poll_max_attempts,
        timeout=httpx.Timeout(
            settings.provider_timeout_s, connect=settings.provider_connect_timeout_s
        ),
        sleep=sleep,
    )
    return runner.run(turns, req.assistant_ref)


async def stream_chat(
    *,
    message: str | None,
    history: Sequence[Turn],
    context: str | None,
    client: httpx.AsyncClient,
    registry: ProviderRegistry,
    settings: Settings,
    provider_id: str | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncIterator[CanonicalEvent]:
    """Serve one chat message as canonical events.

    Args:
        message: The new user message.
        history: Prior turns supplied by the client, in order.
        context: Optional page context text.
        client: Shared httpx.AsyncClient.
        registry: Provider adapter registry.
        settings: Application settings (configuration collaborator).
        provider_id: Provider override; defaults to CHATRELAY_PROVIDER.
        sleep: Poll sleep, injectable for tests.
    """
    provider_id = provider_id or settings.default_provider
    set_provider(provider_id)
    set_flow_id(uuid4().hex)

    start = time.monotonic()
    output_chars = 0
    outcome = "complete"

    try:
        try:
            config = settings.provider_config(provider_id)
        except KeyError:
            raise ConfigurationError(f"Unknown provider: {provider_id}", provider_id) from None

        req = build_chat_request(
            config,
            message,
            history,
            context,
            max_context_chars=settings.max_context_chars,
        )
        source = _dispatch(
            req,
            api_key=config.api_key,
            client=client,
            registry=registry,
            settings=settings,
            sleep=sleep,
        )
    except LLMError as e:
        logger.warning(
            "chat.request.rejected",
            **safe_kv(provider=provider_id, error_class=e.error_class.value),
        )
        yield e.to_event()
        return

    logger.info(
        "chat.request.accepted",
        **safe_kv(
            provider=provider_id,
            mode=req.mode.value,
            history_turns=len(req.turns),
            message_chars=len(message),
            message_sha256=hash_text(message),
            context_chars=len(context or ""),
        ),
    )

    try:
        async with aclosing(bridge_events(source, maxsize=settings.relay_queue_size)) as events:
            async for event in events:
                if isinstance(event, ContentEvent):
                    output_chars += len(event.text)
                elif isinstance(event, ErrorEvent):
                    outcome = "error"
                yield event
    except (asyncio.CancelledError, GeneratorExit):
        outcome = "disconnected"
        logger.info(
            "chat.client_disconnected",
            **safe_kv(provider=provider_id, output_chars=output_chars),
        )
        raise
    except Exception:
        outcome = "error"
        logger.exception("chat.request.unexpected_error", **safe_kv(provider=provider_id))
        yield ErrorEvent(message=INTERNAL_ERROR_MESSAGE, code=LLMErrorClass.INTERNAL.value)
    finally:
        logger.info(
            "chat.request.finished",
            **safe_kv(
                provider=provider_id,
                outcome=outcome,
                output_chars=output_chars,
                latency_ms=int((time.monotonic() - start) * 1000),
            ),
        )


async def stream_chat_sse(**kwargs) -> AsyncIterator[str]:
    """stream_chat() rendered as SSE frames; DoneEvent produces no frame."""
    async for event in stream_chat(**kwargs):
        frame = format_sse_event(event)
        if frame:
            yield frame
