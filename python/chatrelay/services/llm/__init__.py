"""Provider relay core.

Provides a unified interface for streaming chat completions from OpenAI,
Mistral, Perplexity, Anthropic and Gemini, plus OpenAI assistant runs. It
includes:

- Stateless provider adapters resolved through a registry
- Message assembly (provider-agnostic)
- Streaming relay with partial-line carryover
- Assistant-run polling state machine
- Error taxonomy mapped onto one terminal ErrorEvent

Usage:
    from chatrelay.services.llm import StreamingRelay, assemble, default_registry

    registry = default_registry()
    turns = assemble("You are helpful.", [], "Hello!")
    relay = StreamingRelay(httpx_client)
    async for event in relay.stream(registry.resolve("openai"), turns,
                                    model="gpt-4o", api_key="sk-..."):
        ...

Rules:
- Adapters never perform I/O
- No retries inside the relay (the client decides whether to retry)
- No logging of request/response bodies
"""

from chatrelay.services.llm.adapter import AssistantAdapter, ProviderAdapter
from chatrelay.services.llm.assistant_run import AssistantRunner
from chatrelay.services.llm.bridge import bridge_events
from chatrelay.services.llm.errors import (
    ConfigurationError,
    LLMError,
    LLMErrorClass,
    PollTimeoutError,
    ProviderError,
    RunFailedError,
    TransportError,
    ValidationError,
)
from chatrelay.services.llm.prompt import assemble
from chatrelay.services.llm.registry import ProviderRegistry, default_registry
from chatrelay.services.llm.relay import RelayState, StreamingRelay
from chatrelay.services.llm.types import (
    CanonicalEvent,
    ChatMode,
    ChatRequest,
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    StatusEvent,
    Turn,
    format_sse_event,
    parse_event_payload,
)

__all__ = [
    # Core types
    "Turn",
    "ChatMode",
    "ChatRequest",
    "CanonicalEvent",
    "ContentEvent",
    "StatusEvent",
    "ErrorEvent",
    "DoneEvent",
    "format_sse_event",
    "parse_event_payload",
    # Adapters
    "ProviderAdapter",
    "AssistantAdapter",
    "ProviderRegistry",
    "default_registry",
    # Execution
    "StreamingRelay",
    "RelayState",
    "AssistantRunner",
    "bridge_events",
    # Assembly
    "assemble",
    # Errors
    "LLMError",
    "LLMErrorClass",
    "ValidationError",
    "ConfigurationError",
    "TransportError",
    "ProviderError",
    "PollTimeoutError",
    "RunFailedError",
]
