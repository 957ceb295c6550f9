"""Assistant-run state machine.

Strict linear pipeline used in assistant mode; each step either advances or
terminates the whole request:

1. CreateThread: POST threads → thread id
2. PopulateThread: one POST per assembled turn, in order
3. StartRun: POST runs bound to the assistant ref → run id
4. Poll: GET run status every poll interval, up to max_attempts
   - first iteration emits one StatusEvent("processing")
   - completed → FetchResult
   - failed / cancelled / expired → RunFailedError("run <status>")
   - anything else consumes one attempt
   - budget exhausted → PollTimeoutError("timeout")
5. FetchResult: GET the newest thread message, emit its full text as one
   ContentEvent, then DoneEvent

Every request gets a fresh thread; thread ids are never cached across
requests. Polling holds no lock and stops as soon as the surrounding task is
cancelled.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

import httpx

from chatrelay.logging import get_logger
from chatrelay.services.llm.adapter import AssistantAdapter
from chatrelay.services.llm.errors import (
    LLMError,
    PollTimeoutError,
    ProviderError,
    RunFailedError,
    TransportError,
)
from chatrelay.services.llm.types import (
    CanonicalEvent,
    ContentEvent,
    DoneEvent,
    Run,
    RunStatus,
    StatusEvent,
    Turn,
)
from chatrelay.services.redact import safe_kv

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL_S = 0.5
DEFAULT_MAX_ATTEMPTS = 60
PROCESSING_NOTE = "processing"


class AssistantRunner:
    """Drives one assistant run from thread creation to the final message."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        adapter: AssistantAdapter,
        *,
        api_key: str,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout: httpx.Timeout | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._adapter = adapter
        self._headers = adapter.build_headers(api_key)
        self._poll_interval_s = poll_interval_s
        self._max_attempts = max_attempts
        self._timeout = timeout or httpx.Timeout(60.0, connect=10.0)
        self._sleep = sleep
        self.run_state: Run | None = None

    @property
    def provider(self) -> str:
        return self._adapter.provider_id

    async def run(
        self, turns: Sequence[Turn], assistant_ref: str
    ) -> AsyncIterator[CanonicalEvent]:
        """Execute the pipeline, yielding canonical events.

        Ends with exactly one DoneEvent or one ErrorEvent.
        """
        start = time.monotonic()
        try:
            thread_id = await self._create_thread()
            for turn in turns:
                await self._append_message(thread_id, turn)

            run = await self._start_run(thread_id, assistant_ref)
            self.run_state = run
            logger.info(
                "assistant.run.started",
                **safe_kv(provider=self.provider, thread_id=thread_id, run_id=run.run_id),
            )

            async for event in self._poll(run):
                yield event

            text = await self._fetch_result(thread_id)

        except LLMError as e:
            logger.error(
                "assistant.run.failed",
                **safe_kv(
                    provider=self.provider,
                    error_class=e.error_class.value,
                    run_status=self.run_state.status if self.run_state else None,
                    attempts=self.run_state.attempts if self.run_state else 0,
                    run_statuses=list(self.run_state.history) if self.run_state else [],
                    latency_ms=int((time.monotonic() - start) * 1000),
                ),
            )
            yield e.to_event()
            return

        logger.info(
            "assistant.run.finished",
            **safe_kv(
                provider=self.provider,
                attempts=run.attempts,
                output_chars=len(text),
                latency_ms=int((time.monotonic() - start) * 1000),
            ),
        )
        yield ContentEvent(text=text)
        yield DoneEvent()

    async def _create_thread(self) -> str:
        data = await self._request(
            "POST",
            self._adapter.threads_url(),
            failure="thread creation failed",
            json=self._adapter.thread_body(),
        )
        thread_id = self._adapter.parse_id(data)
        if not thread_id:
            raise ProviderError("thread creation failed", self.provider, status_code=None)
        return thread_id

    async def _append_message(self, thread_id: str, turn: Turn) -> None:
        await self._request(
            "POST",
            self._adapter.messages_url(thread_id),
            failure="message append failed",
            json=self._adapter.message_body(turn),
        )

    async def _start_run(self, thread_id: str, assistant_ref: str) -> Run:
        data = await self._request(
            "POST",
            self._adapter.runs_url(thread_id),
            failure="run start failed",
            json=self._adapter.run_body(assistant_ref),
        )
        run_id = self._adapter.parse_id(data)
        if not run_id:
            raise ProviderError("run start failed", self.provider, status_code=None)

        status = self._adapter.parse_run_status(data) or RunStatus.QUEUED.value
        return Run(thread_id=thread_id, run_id=run_id, status=status)

    async def _poll(self, run: Run) -> AsyncIterator[CanonicalEvent]:
        """Poll until the run completes; raise on failure or timeout."""
        url = self._adapter.run_url(run.thread_id, run.run_id)

        while run.attempts < self._max_attempts:
            if run.attempts == 0:
                yield StatusEvent(note=PROCESSING_NOTE)
            run.attempts += 1

            try:
                data = await self._request("GET", url, failure="run status failed")
            except LLMError as e:
                # A failed poll consumes one attempt
                logger.warning(
                    "assistant.run.poll_failed",
                    **safe_kv(
                        provider=self.provider,
                        attempt=run.attempts,
                        error_class=e.error_class.value,
                    ),
                )
            else:
                status = self._adapter.parse_run_status(data)
                if status:
                    run.status = status
                    run.history.append(status)
                logger.debug(
                    "assistant.run.polled",
                    **safe_kv(provider=self.provider, attempt=run.attempts, run_status=run.status),
                )

                if run.is_completed:
                    return
                if run.is_failed:
                    raise RunFailedError(run.status, self.provider)

            if run.attempts < self._max_attempts:
                await self._sleep(self._poll_interval_s)

        run.status = RunStatus.TIMEOUT.value
        raise PollTimeoutError("timeout", self.provider)

    async def _fetch_result(self, thread_id: str) -> str:
        data = await self._request(
            "GET",
            self._adapter.messages_url(thread_id),
            failure="result fetch failed",
            params=self._adapter.latest_message_params(),
        )
        text = self._adapter.extract_message_text(data)
        if not text:
            raise ProviderError("empty assistant response", self.provider, status_code=None)
        return text

    async def _request(self, method: str, url: str, *, failure: str, **kwargs) -> dict:
        """One JSON call of the pipeline.

        Raises:
            TransportError: On connection failure or timeout.
            ProviderError: On non-2xx status or a non-JSON body.
        """
        try:
            response = await self._client.request(
                method, url, headers=self._headers, timeout=self._timeout, **kwargs
            )
        except httpx.HTTPError as e:
            raise TransportError(failure, self.provider) from e

        if not response.is_success:
            raise ProviderError(failure, self.provider, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(failure, self.provider, status_code=response.status_code) from e
        return data if isinstance(data, dict) else {}
