"""Mistral adapters.

Direct mode uses the OpenAI-compatible chat completions endpoint:
- Endpoint: POST https://api.mistral.ai/v1/chat/completions
- Same body, frame shape and [DONE] terminator as OpenAI

Assistant ("agent") mode streams from the agents endpoint instead of using a
thread + run backend:
- Endpoint: POST https://api.mistral.ai/v1/agents/completions
- Body: {"agent_id": "<assistant_ref>", "messages": [...], "stream": true}
"""

from collections.abc import Sequence

from chatrelay.services.llm.openai_adapter import OpenAIAdapter
from chatrelay.services.llm.types import Turn

MISTRAL_CHAT_URL = "https://api.mistral.ai/v1/chat/completions"
MISTRAL_AGENTS_URL = "https://api.mistral.ai/v1/agents/completions"


class MistralAdapter(OpenAIAdapter):
    """Mistral chat completions adapter."""

    provider_id = "mistral"
    chat_url = MISTRAL_CHAT_URL


class MistralAgentAdapter(OpenAIAdapter):
    """Mistral agents adapter. The model argument carries the agent id."""

    provider_id = "mistral"
    chat_url = MISTRAL_AGENTS_URL

    def build_payload(self, turns: Sequence[Turn], model: str) -> dict:
        return {
            "agent_id": model,
            "messages": [self._turn_to_message(turn) for turn in turns],
            "stream": True,
        }
