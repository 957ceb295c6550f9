"""Anthropic adapter.

- Endpoint: POST https://api.anthropic.com/v1/messages
- Headers: x-api-key: <key>, anthropic-version: 2023-06-01, Content-Type: application/json

Turn conversion:
- System turns are lifted into the separate "system" field (joined with a
  blank line when there are several)
- Remaining turns keep their role in the messages array

Request body:
{
  "model": "<model_name>",
  "max_tokens": 4096,
  "system": "<system_prompt>",
  "messages": [
    {"role": "user", "content": "..."},
    {"role": "assistant", "content": "..."}
  ],
  "stream": true
}

Streaming:
- "event: <type>" lines precede every data line; the data JSON repeats the
  type, so only data lines are read
- data: {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "..."}}
- message_start, content_block_start/stop, message_delta, ping and
  message_stop carry no text
- data: {"type": "error", "error": {"type": "overloaded_error", "message": "..."}}
"""

from collections.abc import Sequence
from typing import Any

from chatrelay.services.llm.adapter import ProviderAdapter
from chatrelay.services.llm.types import Turn

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter(ProviderAdapter):
    """Anthropic messages adapter.

    Handles conversion between Turn objects and Anthropic message format,
    including extracting the system prompt to a separate field.
    """

    provider_id = "anthropic"

    def __init__(self, max_tokens: int = DEFAULT_MAX_TOKENS):
        self.max_tokens = max_tokens

    def endpoint_url(self, model: str) -> str:
        return ANTHROPIC_MESSAGES_URL

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }

    def build_payload(self, turns: Sequence[Turn], model: str) -> dict:
        system_parts = [turn.content for turn in turns if turn.role == "system"]
        messages = [
            {"role": turn.role, "content": turn.content}
            for turn in turns
            if turn.role != "system"
        ]

        body: dict = {
            "model": model,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "stream": True,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)

        return body

    def extract_delta(self, fragment: Any) -> str | None:
        if not isinstance(fragment, dict):
            return None
        if fragment.get("type") != "content_block_delta":
            return None

        delta = fragment.get("delta") or {}
        if delta.get("type") != "text_delta":
            return None

        text = delta.get("text")
        if not isinstance(text, str) or not text:
            return None
        return text
