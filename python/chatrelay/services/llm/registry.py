"""Provider adapter registry.

Maps a provider id to its adapters. Resolved once per request; adapters are
constructed once and shared read-only across requests.

Three tables exist because providers expose assistant mode differently:
- direct: one streaming chat endpoint per provider
- agent: assistant mode served as a streaming endpoint (Mistral agents)
- assistant: assistant mode served by a thread + run backend (OpenAI)

Adding a provider means registering one adapter, not editing a conditional.
"""

from chatrelay.services.llm.adapter import AssistantAdapter, ProviderAdapter
from chatrelay.services.llm.anthropic_adapter import DEFAULT_MAX_TOKENS, AnthropicAdapter
from chatrelay.services.llm.errors import ConfigurationError
from chatrelay.services.llm.gemini_adapter import GeminiAdapter
from chatrelay.services.llm.mistral_adapter import MistralAdapter, MistralAgentAdapter
from chatrelay.services.llm.openai_adapter import OpenAIAdapter, OpenAIAssistantAdapter
from chatrelay.services.llm.perplexity_adapter import PerplexityAdapter


class ProviderRegistry:
    """Read-only lookup from provider id to adapter."""

    def __init__(self):
        self._direct: dict[str, ProviderAdapter] = {}
        self._agent: dict[str, ProviderAdapter] = {}
        self._assistant: dict[str, AssistantAdapter] = {}

    def register(self, adapter: ProviderAdapter) -> None:
        """Register a direct-mode adapter under its provider id."""
        self._direct[adapter.provider_id] = adapter

    def register_agent(self, adapter: ProviderAdapter) -> None:
        """Register a streaming assistant-mode adapter."""
        self._agent[adapter.provider_id] = adapter

    def register_assistant(self, adapter: AssistantAdapter) -> None:
        """Register a thread + run assistant-mode adapter."""
        self._assistant[adapter.provider_id] = adapter

    @property
    def provider_ids(self) -> tuple[str, ...]:
        return tuple(self._direct)

    def resolve(self, provider_id: str) -> ProviderAdapter:
        """Direct-mode adapter for a provider.

        Raises:
            ConfigurationError: If the provider id is unknown.
        """
        adapter = self._direct.get(provider_id)
        if adapter is None:
            raise ConfigurationError(f"Unknown provider: {provider_id}", provider_id)
        return adapter

    def resolve_agent(self, provider_id: str) -> ProviderAdapter | None:
        """Streaming assistant-mode adapter, or None if the provider has none."""
        return self._agent.get(provider_id)

    def resolve_assistant(self, provider_id: str) -> AssistantAdapter | None:
        """Thread + run assistant-mode adapter, or None if the provider has none."""
        return self._assistant.get(provider_id)

    def supports_assistant_mode(self, provider_id: str) -> bool:
        return provider_id in self._agent or provider_id in self._assistant


def default_registry(anthropic_max_tokens: int = DEFAULT_MAX_TOKENS) -> ProviderRegistry:
    """Registry with every supported provider.

    Args:
        anthropic_max_tokens: Completion budget sent to Anthropic, which
            requires one on every request.
    """
    registry = ProviderRegistry()
    registry.register(OpenAIAdapter())
    registry.register(MistralAdapter())
    registry.register(PerplexityAdapter())
    registry.register(AnthropicAdapter(max_tokens=anthropic_max_tokens))
    registry.register(GeminiAdapter())

    registry.register_agent(MistralAgentAdapter())
    registry.register_assistant(OpenAIAssistantAdapter())
    return registry
