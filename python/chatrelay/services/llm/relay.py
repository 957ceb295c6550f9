"""Streaming relay over one outbound provider exchange.

State machine: IDLE → CONNECTING → STREAMING → {COMPLETED | FAILED}

- CONNECTING: the adapter's body/headers are sent via a long-lived POST
- STREAMING: entered when the first bytes arrive
- Each raw chunk goes through a LineBuffer; incomplete lines carry over
- Only data frames (adapter.frame_prefix) are decoded as JSON
- Malformed JSON on a single frame is logged and skipped
- Each non-null delta becomes one ContentEvent, yielded immediately
- Non-2xx status or transport failure → FAILED, one terminal ErrorEvent
- End of body without error → COMPLETED, one DoneEvent

Content already yielded is never retracted when the stream fails later.
A provider closing the connection without a terminator (no [DONE],
no trailing newline) still completes normally.

One StreamingRelay serves one request; it is cheap to construct and holds
no state beyond its own exchange.
"""

import json
import time
from collections.abc import AsyncIterator, Sequence
from enum import Enum

import httpx

from chatrelay.logging import get_logger
from chatrelay.services.llm.adapter import ProviderAdapter
from chatrelay.services.llm.errors import (
    LLMError,
    ProviderError,
    provider_error_from_response,
    transport_error_from_exception,
)
from chatrelay.services.llm.framing import LineBuffer, data_payload
from chatrelay.services.llm.types import CanonicalEvent, ContentEvent, DoneEvent, Turn
from chatrelay.services.redact import safe_kv

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 60.0
DEFAULT_CONNECT_TIMEOUT_S = 10.0


class RelayState(str, Enum):
    """Lifecycle of one outbound exchange."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


def _safe_parse_json(body: bytes) -> dict | None:
    """Decode an error body, tolerating non-JSON responses."""
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


class StreamingRelay:
    """Relays one provider stream as canonical events."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    ):
        """Initialize with the shared HTTP client.

        Args:
            client: Shared httpx.AsyncClient for connection pooling.
            timeout_s: Read timeout between chunks.
            connect_timeout_s: Connection establishment timeout.
        """
        self._client = client
        self._timeout = httpx.Timeout(timeout_s, connect=connect_timeout_s)
        self.state = RelayState.IDLE
        self.malformed_frames = 0

    async def stream(
        self,
        adapter: ProviderAdapter,
        turns: Sequence[Turn],
        *,
        model: str,
        api_key: str,
    ) -> AsyncIterator[CanonicalEvent]:
        """Open the provider stream and yield canonical events.

        Never raises for provider or transport failures: those end the
        iteration with exactly one ErrorEvent. Cancellation propagates.
        """
        provider = adapter.provider_id
        start = time.monotonic()
        delta_count = 0
        output_chars = 0

        self.state = RelayState.CONNECTING
        logger.info(
            "relay.stream.started",
            **safe_kv(provider=provider, model_name=model, turn_count=len(turns)),
        )

        try:
            async with self._client.stream(
                "POST",
                adapter.endpoint_url(model),
                headers=adapter.build_headers(api_key),
                content=adapter.build_body(turns, model),
                timeout=self._timeout,
            ) as response:
                if not response.is_success:
                    body = await response.aread()
                    raise provider_error_from_response(
                        provider, response.status_code, _safe_parse_json(body)
                    )

                buffer = LineBuffer()
                async for chunk in response.aiter_bytes():
                    if self.state == RelayState.CONNECTING:
                        self.state = RelayState.STREAMING
                    for line in buffer.feed(chunk):
                        delta = self._decode_line(adapter, line)
                        if delta:
                            delta_count += 1
                            output_chars += len(delta)
                            yield ContentEvent(text=delta)

                # Connection closed without a trailing newline
                for line in buffer.flush():
                    delta = self._decode_line(adapter, line)
                    if delta:
                        delta_count += 1
                        output_chars += len(delta)
                        yield ContentEvent(text=delta)

        except LLMError as e:
            yield self._fail(e, start, delta_count)
            return
        except httpx.HTTPError as e:
            yield self._fail(transport_error_from_exception(provider, e), start, delta_count)
            return

        self.state = RelayState.COMPLETED
        logger.info(
            "relay.stream.completed",
            **safe_kv(
                provider=provider,
                delta_count=delta_count,
                output_chars=output_chars,
                malformed_frames=self.malformed_frames,
                latency_ms=int((time.monotonic() - start) * 1000),
            ),
        )
        yield DoneEvent()

    def _decode_line(self, adapter: ProviderAdapter, line: str) -> str | None:
        """Delta carried by one complete line, or None.

        Raises:
            ProviderError: If the frame is an in-band provider error.
        """
        payload = data_payload(line, adapter.frame_prefix)
        if payload is None or not payload.strip():
            return None

        if adapter.is_control_payload(payload):
            return adapter.extract_delta(payload.strip())

        try:
            fragment = json.loads(payload)
        except json.JSONDecodeError:
            self.malformed_frames += 1
            logger.warning(
                "relay.frame.malformed",
                **safe_kv(provider=adapter.provider_id, payload_chars=len(payload)),
            )
            return None

        error_message = adapter.extract_error(fragment)
        if error_message:
            raise ProviderError(error_message, adapter.provider_id, status_code=None)

        return adapter.extract_delta(fragment)

    def _fail(self, error: LLMError, start: float, delta_count: int):
        self.state = RelayState.FAILED
        logger.error(
            "relay.stream.failed",
            **safe_kv(
                provider=error.provider,
                error_class=error.error_class.value,
                status_code=getattr(error, "status_code", None),
                delta_count=delta_count,
                latency_ms=int((time.monotonic() - start) * 1000),
            ),
        )
        return error.to_event()
