"""OpenAI adapters.

Direct mode (chat completions):
- Endpoint: POST https://api.openai.com/v1/chat/completions
- Headers: Authorization: Bearer <key>, Content-Type: application/json
- Streaming: Server-Sent Events with data: {...} format
- Terminal event: data: [DONE]

Request body:
{
  "model": "<model_name>",
  "messages": [
    {"role": "system", "content": "..."},
    {"role": "user", "content": "..."},
    {"role": "assistant", "content": "..."}
  ],
  "stream": true
}

Stream frame:
{"choices": [{"delta": {"content": "<delta>"}, "finish_reason": null}]}

Assistant mode (threads + runs, OpenAI-Beta: assistants=v2):
- POST /v1/threads                          -> {"id": "thread_..."}
- POST /v1/threads/{thread}/messages        {"role": "user", "content": "..."}
- POST /v1/threads/{thread}/runs            {"assistant_id": "asst_..."} -> {"id": "run_..."}
- GET  /v1/threads/{thread}/runs/{run}      -> {"status": "queued|in_progress|completed|..."}
- GET  /v1/threads/{thread}/messages?order=desc&limit=1
    -> {"data": [{"content": [{"type": "text", "text": {"value": "..."}}]}]}

Threads only accept user and assistant messages; a system turn is appended
as a user message with the same text.
"""

from collections.abc import Sequence
from typing import Any

from chatrelay.services.llm.adapter import AssistantAdapter, ProviderAdapter
from chatrelay.services.llm.types import Turn

OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENAI_CHAT_URL = f"{OPENAI_BASE_URL}/chat/completions"
OPENAI_ASSISTANTS_BETA = "assistants=v2"


class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions adapter.

    The frame shape is shared by every OpenAI-compatible provider, which
    subclass this and only change the id and endpoint.
    """

    provider_id = "openai"
    chat_url = OPENAI_CHAT_URL
    control_payloads = frozenset({"[DONE]"})

    def endpoint_url(self, model: str) -> str:
        return self.chat_url

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def build_payload(self, turns: Sequence[Turn], model: str) -> dict:
        return {
            "model": model,
            "messages": [self._turn_to_message(turn) for turn in turns],
            "stream": True,
        }

    def extract_delta(self, fragment: Any) -> str | None:
        if not isinstance(fragment, dict):
            return None

        choices = fragment.get("choices")
        if not choices or not isinstance(choices, list):
            return None

        delta = choices[0].get("delta") or {}
        text = delta.get("content")
        if not isinstance(text, str) or not text:
            return None
        return text

    def _turn_to_message(self, turn: Turn) -> dict[str, str]:
        """OpenAI uses the same role names as our Turn type."""
        return {
            "role": turn.role,
            "content": turn.content,
        }


class OpenAIAssistantAdapter(AssistantAdapter):
    """OpenAI Assistants (threads + runs) descriptor."""

    provider_id = "openai"
    base_url = OPENAI_BASE_URL

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": OPENAI_ASSISTANTS_BETA,
        }

    def threads_url(self) -> str:
        return f"{self.base_url}/threads"

    def messages_url(self, thread_id: str) -> str:
        return f"{self.base_url}/threads/{thread_id}/messages"

    def runs_url(self, thread_id: str) -> str:
        return f"{self.base_url}/threads/{thread_id}/runs"

    def run_url(self, thread_id: str, run_id: str) -> str:
        return f"{self.base_url}/threads/{thread_id}/runs/{run_id}"

    def thread_body(self) -> dict:
        return {}

    def message_body(self, turn: Turn) -> dict:
        role = "assistant" if turn.role == "assistant" else "user"
        return {"role": role, "content": turn.content}

    def run_body(self, assistant_ref: str) -> dict:
        return {"assistant_id": assistant_ref}

    def latest_message_params(self) -> dict[str, str]:
        return {"order": "desc", "limit": "1"}

    def parse_id(self, data: dict) -> str | None:
        value = data.get("id") if isinstance(data, dict) else None
        return value or None

    def parse_run_status(self, data: dict) -> str | None:
        value = data.get("status") if isinstance(data, dict) else None
        return value or None

    def extract_message_text(self, data: dict) -> str | None:
        """Join every text block of the newest message."""
        if not isinstance(data, dict):
            return None
        messages = data.get("data") or []
        if not messages:
            return None

        parts = []
        for block in messages[0].get("content") or []:
            if block.get("type") != "text":
                continue
            text = block.get("text")
            value = text.get("value") if isinstance(text, dict) else text
            if value:
                parts.append(value)

        return "".join(parts) or None
