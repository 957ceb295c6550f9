"""Abstract base classes for provider adapters.

Adapters are stateless descriptors: pure data plus pure functions. They are
constructed once, owned by the registry and shared across requests.

Rules:
- No I/O inside adapters (the relay and the run state machine do the HTTP)
- No mutation per request
- No logging of request/response bodies
- extract_delta returns None for control frames, never an empty string

Two kinds exist:
- ProviderAdapter: direct mode, one streaming POST decoded frame by frame
- AssistantAdapter: assistant mode, thread + run endpoints polled to completion
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from chatrelay.services.llm.framing import DATA_PREFIX
from chatrelay.services.llm.types import Turn


class ProviderAdapter(ABC):
    """Direct-mode adapter for one streaming chat backend.

    Subclasses set provider_id and implement the request shape and the delta
    extraction for their provider's frames.
    """

    provider_id: str = ""

    # Prefix marking a data frame line in the provider's stream
    frame_prefix: str = DATA_PREFIX

    # Payloads that are protocol control frames rather than JSON
    control_payloads: frozenset[str] = frozenset()

    @abstractmethod
    def endpoint_url(self, model: str) -> str:
        """Streaming endpoint for the given model."""

    @abstractmethod
    def build_headers(self, api_key: str) -> dict[str, str]:
        """Auth and content headers for one request."""

    @abstractmethod
    def build_payload(self, turns: Sequence[Turn], model: str) -> dict:
        """Provider-native request body, including the streaming flag."""

    @abstractmethod
    def extract_delta(self, fragment: Any) -> str | None:
        """Incremental text carried by one decoded fragment, or None.

        fragment is the decoded JSON of one data frame, or the raw payload
        string for control frames listed in control_payloads.
        """

    def build_body(self, turns: Sequence[Turn], model: str) -> bytes:
        """Serialized request body."""
        return json.dumps(self.build_payload(turns, model)).encode("utf-8")

    def is_control_payload(self, payload: str) -> bool:
        """Whether a data payload is a control frame that is not JSON."""
        return payload.strip() in self.control_payloads

    def extract_error(self, fragment: Any) -> str | None:
        """Error message carried in-band by a fragment, or None.

        Default recognizes {"error": {"message": ...}} and {"error": "..."}.
        """
        if not isinstance(fragment, dict):
            return None
        error = fragment.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("type") or "provider error")
        if isinstance(error, str) and error:
            return error
        return None


class AssistantAdapter(ABC):
    """Assistant-mode adapter for a thread + run backend.

    Describes URLs, headers and body shapes of the thread/message/run
    endpoints and how to read their JSON responses.
    """

    provider_id: str = ""

    @abstractmethod
    def build_headers(self, api_key: str) -> dict[str, str]:
        """Auth and content headers for every call of the run pipeline."""

    @abstractmethod
    def threads_url(self) -> str:
        """Endpoint creating a thread."""

    @abstractmethod
    def messages_url(self, thread_id: str) -> str:
        """Endpoint appending to / listing a thread's messages."""

    @abstractmethod
    def runs_url(self, thread_id: str) -> str:
        """Endpoint starting a run on a thread."""

    @abstractmethod
    def run_url(self, thread_id: str, run_id: str) -> str:
        """Endpoint returning one run's status."""

    @abstractmethod
    def thread_body(self) -> dict:
        """Body for thread creation."""

    @abstractmethod
    def message_body(self, turn: Turn) -> dict:
        """Body appending one turn to a thread."""

    @abstractmethod
    def run_body(self, assistant_ref: str) -> dict:
        """Body starting a run bound to an assistant."""

    @abstractmethod
    def latest_message_params(self) -> dict[str, str]:
        """Query params selecting the thread's most recent message."""

    @abstractmethod
    def parse_id(self, data: dict) -> str | None:
        """Object id from a create response (thread or run)."""

    @abstractmethod
    def parse_run_status(self, data: dict) -> str | None:
        """Run status from a run response."""

    @abstractmethod
    def extract_message_text(self, data: dict) -> str | None:
        """Full text of the most recent message from a message-list response."""
