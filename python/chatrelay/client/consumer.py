"""Client stream consumer.

Sends one user message to the relay, accumulates Content deltas and hands
them to a renderer callback as they arrive.

Failure handling:
- Transport errors, non-2xx relay responses and broken streams retry the
  whole request (no mid-stream resume) with exponential backoff; the response
  buffer starts empty on every attempt
- An idle timeout, independent of the retry budget, fires when no Content
  or Status event arrived at all; it is reported without further retry
- The HTTP read timeout is disabled; relay silence (assistant polling, slow
  first tokens) is bounded by the idle timeout alone
- A terminal Error event stops immediately; partial content is kept and
  persisted as the assistant turn

Only one attempt is outstanding per message and sends are serialized, so
the transcript follows history append order.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from chatrelay.client.backoff import RetryState
from chatrelay.client.history import HistoryStore
from chatrelay.config import ClientSettings
from chatrelay.logging import get_logger
from chatrelay.services.llm.framing import LineBuffer, data_payload
from chatrelay.services.llm.types import (
    ContentEvent,
    ErrorEvent,
    StatusEvent,
    parse_event_payload,
)
from chatrelay.services.redact import safe_kv

logger = get_logger(__name__)

RETRIES_EXHAUSTED_MESSAGE = "Unable to reach the server after several attempts. Please try again."
IDLE_TIMEOUT_MESSAGE = "Response timed out."

ContentCallback = Callable[[str, str], None]
StatusCallback = Callable[[str], None]


class RelayUnavailableError(Exception):
    """The relay answered with a non-2xx status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP error! status: {status_code}")


@dataclass
class ConsumerResult:
    """Outcome of one send().

    Attributes:
        text: Accumulated assistant text (partial when an error occurred)
        error: User-visible error message, None on success
        attempts: Outbound attempts made
        timed_out: Whether the idle timeout ended the wait
    """

    text: str = ""
    error: str | None = None
    attempts: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class _Attempt:
    """Buffer of one outbound attempt."""

    text: str = ""
    error: str | None = None
    received_event: bool = False


class ChatStreamConsumer:
    """Sends messages to the relay and renders the streamed reply."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        history: HistoryStore,
        settings: ClientSettings | None = None,
        *,
        on_content: ContentCallback | None = None,
        on_status: StatusCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the consumer.

        Args:
            client: HTTP client used to reach the relay.
            history: Conversation history, appended to as messages complete.
            settings: Relay URL, retry budget and idle timeout.
            on_content: Called with (accumulated_text, delta) for every delta.
            on_status: Called with the note of every status event.
            sleep: Backoff sleep, injectable for tests.
        """
        self._client = client
        self._history = history
        self._settings = settings or ClientSettings()
        self._on_content = on_content
        self._on_status = on_status
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def history(self) -> HistoryStore:
        return self._history

    async def send(self, message: str, *, context: str | None = None) -> ConsumerResult:
        """Send one message and wait for the full reply.

        The user turn is appended before the request; the history sent is
        everything before it.
        """
        async with self._lock:
            prior = [turn.to_dict() for turn in self._history.turns]
            self._history.append("user", message)

            body: dict = {"message": message, "history": prior}
            if context:
                body["context"] = context

            return await self._send_with_retry(body)

    async def _send_with_retry(self, body: dict) -> ConsumerResult:
        settings = self._settings
        retry = RetryState(
            max_attempts=settings.max_attempts,
            base_delay_s=settings.backoff_base_ms / 1000,
            cap_s=settings.backoff_cap_ms / 1000,
        )
        result = ConsumerResult()

        while True:
            result.attempts += 1
            attempt = _Attempt()
            try:
                await self._attempt(body, attempt)
            except TimeoutError:
                result.timed_out = True
                result.error = IDLE_TIMEOUT_MESSAGE
                logger.warning(
                    "client.idle_timeout",
                    **safe_kv(attempt=result.attempts, idle_timeout_s=settings.idle_timeout_s),
                )
                return result
            except (httpx.HTTPError, RelayUnavailableError) as e:
                logger.warning(
                    "client.attempt.failed",
                    **safe_kv(
                        attempt=result.attempts,
                        error_type=type(e).__name__,
                        status_code=getattr(e, "status_code", None),
                    ),
                )
                delay = retry.record_failure()
                await self._sleep(delay)
                if retry.exhausted:
                    result.error = RETRIES_EXHAUSTED_MESSAGE
                    return result
                logger.info(
                    "client.retry.scheduled",
                    **safe_kv(
                        attempt=result.attempts + 1,
                        max_attempts=retry.max_attempts,
                        delay_ms=int(delay * 1000),
                    ),
                )
                continue

            result.text = attempt.text
            result.error = attempt.error
            if attempt.text:
                self._history.append("assistant", attempt.text)
            return result

    async def _attempt(self, body: dict, attempt: _Attempt) -> None:
        """Run one outbound request to completion.

        Raises:
            TimeoutError: If nothing arrived within the idle timeout.
            RelayUnavailableError: On a non-2xx relay response.
            httpx.HTTPError: On transport failure.
        """
        async with asyncio.timeout(self._settings.idle_timeout_s) as idle:
            async with self._client.stream(
                "POST",
                self._settings.relay_url,
                json=body,
                headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
                timeout=self._request_timeout(),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise RelayUnavailableError(response.status_code)

                buffer = LineBuffer()
                async for chunk in response.aiter_bytes():
                    for line in buffer.feed(chunk):
                        if self._handle_line(line, attempt, idle):
                            return
                for line in buffer.flush():
                    if self._handle_line(line, attempt, idle):
                        return

    def _request_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(None, connect=self._settings.connect_timeout_s)

    def _handle_line(self, line: str, attempt: _Attempt, idle: asyncio.Timeout) -> bool:
        """Apply one stream line; returns True when the stream is finished."""
        payload = data_payload(line)
        if not payload:
            return False

        try:
            event = parse_event_payload(json.loads(payload))
        except json.JSONDecodeError:
            logger.warning("client.frame.malformed", **safe_kv(payload_chars=len(payload)))
            return False

        if isinstance(event, ErrorEvent):
            attempt.error = event.message
            logger.warning("client.stream.error", **safe_kv(code=event.code))
            return True

        if isinstance(event, ContentEvent):
            if not attempt.received_event:
                attempt.received_event = True
                idle.reschedule(None)
            attempt.text += event.text
            if self._on_content:
                self._on_content(attempt.text, event.text)
        elif isinstance(event, StatusEvent):
            if not attempt.received_event:
                attempt.received_event = True
                idle.reschedule(None)
            if self._on_status:
                self._on_status(event.note)

        return False
