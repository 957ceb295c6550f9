"""Shared type definitions for the relay core.

- Turn: Provider-agnostic conversation turn
- ChatRequest: One unified "send a chat message" request
- Canonical events: ContentEvent, StatusEvent, ErrorEvent, DoneEvent
- Run: One assistant run being polled to completion

Canonical stream invariants:
- ContentEvent.text is a delta; concatenating all deltas in arrival order
  reconstructs the full response
- ErrorEvent is terminal, nothing follows it
- StatusEvent is advisory and never contributes to accumulated content
- DoneEvent is implicit at stream close and is never put on the wire
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

Role = Literal["system", "user", "assistant"]
ROLES: tuple[str, ...] = ("system", "user", "assistant")


@dataclass(frozen=True)
class Turn:
    """Provider-agnostic conversation turn.

    Attributes:
        role: One of "system", "user", or "assistant"
        content: The text content of the turn
    """

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ChatMode(str, Enum):
    """How a request is served."""

    DIRECT = "direct"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatRequest:
    """Unified chat request handed to the relay core.

    Attributes:
        provider: Provider id (registry key)
        model: Model id (direct mode)
        turns: Prior conversation turns, in caller order
        current_message: The new user message
        mode: Direct streaming or assistant run
        assistant_ref: Assistant/agent id, required in assistant mode
        definition: System instructions (already merged with page context)
    """

    provider: str
    model: str
    turns: tuple[Turn, ...]
    current_message: str
    mode: ChatMode = ChatMode.DIRECT
    assistant_ref: str | None = None
    definition: str = ""

    def __post_init__(self):
        """Validate the assistant-mode invariant."""
        if self.mode == ChatMode.ASSISTANT and not self.assistant_ref:
            raise ValueError("Assistant mode requires a non-empty assistant_ref")


@dataclass(frozen=True)
class ContentEvent:
    """Partial delta of generated text."""

    text: str

    def to_payload(self) -> dict:
        return {"content": self.text}


@dataclass(frozen=True)
class StatusEvent:
    """Advisory progress note (e.g. "processing")."""

    note: str

    def to_payload(self) -> dict:
        return {"status": self.note}


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal error; no further events follow.

    Attributes:
        message: Human-readable message shown to the user
        code: Normalized error class (LLMErrorClass value)
    """

    message: str
    code: str | None = None

    def to_payload(self) -> dict:
        payload: dict = {"error": self.message}
        if self.code:
            payload["code"] = self.code
        return payload


@dataclass(frozen=True)
class DoneEvent:
    """Successful end of stream. Implicit at stream close."""

    def to_payload(self) -> None:
        return None


CanonicalEvent = ContentEvent | StatusEvent | ErrorEvent | DoneEvent


def format_sse_event(event: CanonicalEvent) -> str:
    """Format a canonical event as one SSE data frame.

    DoneEvent has no wire representation and formats to an empty string.
    """
    payload = event.to_payload()
    if payload is None:
        return ""
    return f"data: {json.dumps(payload)}\n\n"


def parse_event_payload(payload: dict) -> CanonicalEvent | None:
    """Map a decoded wire frame back to a canonical event.

    Returns None for frames that carry none of the known keys.
    """
    if not isinstance(payload, dict):
        return None
    if "error" in payload:
        return ErrorEvent(message=str(payload["error"]), code=payload.get("code"))
    if "content" in payload:
        return ContentEvent(text=str(payload["content"]))
    if "status" in payload:
        return StatusEvent(note=str(payload["status"]))
    return None


class RunStatus(str, Enum):
    """Assistant run statuses the state machine distinguishes."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    TIMEOUT = "timeout"


FAILED_RUN_STATUSES = frozenset({RunStatus.FAILED, RunStatus.CANCELLED, RunStatus.EXPIRED})


@dataclass
class Run:
    """One assistant run, owned by a single request.

    Mutated only by the polling loop. status is kept as the raw provider
    string so statuses outside RunStatus (e.g. "requires_action") survive.
    """

    thread_id: str
    run_id: str
    status: str = RunStatus.QUEUED.value
    attempts: int = 0
    history: list[str] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED.value

    @property
    def is_failed(self) -> bool:
        return self.status in {s.value for s in FAILED_RUN_STATUSES}
