"""Gemini adapter.

- Streaming: POST https://generativelanguage.googleapis.com/v1beta/models/{model}:streamGenerateContent?alt=sse

Auth:
- Header: x-goog-api-key: <key>
- NEVER put key in query param
- NEVER log URL if key accidentally in query

Turn conversion:
- System turns → systemInstruction.parts[].text
- "assistant" role → "model" role in Gemini
- Each turn's content → parts: [{"text": "..."}]

Request body:
{
  "contents": [
    {"role": "user", "parts": [{"text": "..."}]},
    {"role": "model", "parts": [{"text": "..."}]}
  ],
  "systemInstruction": {"parts": [{"text": "<system_prompt>"}]},
  "generationConfig": {"candidateCount": 1}
}

Streaming:
- Each event: data: {"candidates":[{"content":{"parts":[{"text":"..."}]}}]}
- The delta is the concatenation of candidates[0].content.parts[].text
- Terminal: last event has "finishReason": "STOP", then the connection closes
"""

from collections.abc import Sequence
from typing import Any

from chatrelay.services.llm.adapter import ProviderAdapter
from chatrelay.services.llm.types import Turn

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiAdapter(ProviderAdapter):
    """Google Gemini adapter.

    Handles role mapping (assistant → model) and system instruction
    extraction.
    """

    provider_id = "gemini"

    def endpoint_url(self, model: str) -> str:
        return f"{GEMINI_BASE_URL}/{model}:streamGenerateContent?alt=sse"

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }

    def build_payload(self, turns: Sequence[Turn], model: str) -> dict:
        system_parts = [{"text": turn.content} for turn in turns if turn.role == "system"]
        contents = [
            {
                "role": "model" if turn.role == "assistant" else "user",
                "parts": [{"text": turn.content}],
            }
            for turn in turns
            if turn.role != "system"
        ]

        body: dict = {
            "contents": contents,
            "generationConfig": {"candidateCount": 1},
        }
        if system_parts:
            body["systemInstruction"] = {"parts": system_parts}

        return body

    def extract_delta(self, fragment: Any) -> str | None:
        if not isinstance(fragment, dict):
            return None

        candidates = fragment.get("candidates")
        if not candidates or not isinstance(candidates, list):
            return None

        content = candidates[0].get("content") or {}
        text = "".join(
            part.get("text", "") for part in content.get("parts") or [] if isinstance(part, dict)
        )
        return text or None
