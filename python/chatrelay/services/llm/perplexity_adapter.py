"""Perplexity adapter.

OpenAI-compatible chat completions:
- Endpoint: POST https://api.perplexity.ai/chat/completions
- Headers: Authorization: Bearer <key>

Perplexity frames also carry "citations"; only choices[0].delta.content is
relayed.
"""

from chatrelay.services.llm.openai_adapter import OpenAIAdapter

PERPLEXITY_CHAT_URL = "https://api.perplexity.ai/chat/completions"


class PerplexityAdapter(OpenAIAdapter):
    """Perplexity chat completions adapter."""

    provider_id = "perplexity"
    chat_url = PERPLEXITY_CHAT_URL
