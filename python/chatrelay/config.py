"""Application settings loaded from environment variables.

Environment Configuration:
    CHATRELAY_ENV: Deployment environment (local | test | staging | prod)
    CHATRELAY_PROVIDER: Active provider id (openai | mistral | perplexity | anthropic | gemini)
    LOG_JSON: Emit JSON logs (default true)

Per-provider Configuration (P = OPENAI, MISTRAL, PERPLEXITY, ANTHROPIC, GEMINI):
    P_API_KEY: Provider API key
    P_MODEL: Model id (defaults per provider)
    P_DEFINITION: System instructions used in direct mode
    P_ASSISTANT_ID / P_USE_ASSISTANT: Assistant/agent mode (OPENAI and MISTRAL only)

Relay Tuning:
    PROVIDER_TIMEOUT_S, PROVIDER_CONNECT_TIMEOUT_S: Outbound HTTP timeouts
    ASSISTANT_POLL_INTERVAL_MS, ASSISTANT_POLL_MAX_ATTEMPTS: Run polling budget
    MAX_CONTEXT_CHARS: Page context truncation limit
    RELAY_QUEUE_SIZE: Bounded event queue between provider reader and client writer

The core only ever reads configuration through Settings.provider_config().
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

PROVIDER_IDS = ("openai", "mistral", "perplexity", "anthropic", "gemini")

# Providers that expose an assistant/agent mode
ASSISTANT_CAPABLE_PROVIDERS = ("openai", "mistral")


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


@dataclass(frozen=True)
class ProviderConfig:
    """Read-only view of one provider's configuration.

    Attributes:
        provider: Provider id
        api_key: API key (None when not configured)
        model: Model id used in direct mode
        assistant_ref: Assistant/agent id used in assistant mode
        use_assistant_mode: Whether assistant mode is enabled for this provider
        definition: System instructions (may be empty)
    """

    provider: str
    api_key: str | None
    model: str
    assistant_ref: str | None
    use_assistant_mode: bool
    definition: str


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - CHATRELAY_PROVIDER must be a known provider id
    - Timeouts, polling budget and queue size must be positive
    """

    chatrelay_env: Environment = Field(default=Environment.LOCAL, alias="CHATRELAY_ENV")
    default_provider: str = Field(default="openai", alias="CHATRELAY_PROVIDER")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # OpenAI
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4-turbo-preview", alias="OPENAI_MODEL")
    openai_definition: str = Field(default="", alias="OPENAI_DEFINITION")
    openai_assistant_id: str | None = Field(default=None, alias="OPENAI_ASSISTANT_ID")
    openai_use_assistant: bool = Field(default=False, alias="OPENAI_USE_ASSISTANT")

    # Mistral
    mistral_api_key: str | None = Field(default=None, alias="MISTRAL_API_KEY")
    mistral_model: str = Field(default="mistral-large-latest", alias="MISTRAL_MODEL")
    mistral_definition: str = Field(default="", alias="MISTRAL_DEFINITION")
    mistral_assistant_id: str | None = Field(default=None, alias="MISTRAL_ASSISTANT_ID")
    mistral_use_assistant: bool = Field(default=False, alias="MISTRAL_USE_ASSISTANT")

    # Perplexity
    perplexity_api_key: str | None = Field(default=None, alias="PERPLEXITY_API_KEY")
    perplexity_model: str = Field(default="sonar", alias="PERPLEXITY_MODEL")
    perplexity_definition: str = Field(default="", alias="PERPLEXITY_DEFINITION")

    # Anthropic
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-3-opus-20240229", alias="ANTHROPIC_MODEL")
    anthropic_definition: str = Field(default="", alias="ANTHROPIC_DEFINITION")
    anthropic_max_tokens: int = Field(default=4096, alias="ANTHROPIC_MAX_TOKENS")

    # Gemini
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-flash", alias="GEMINI_MODEL")
    gemini_definition: str = Field(default="", alias="GEMINI_DEFINITION")

    # Relay tuning
    provider_timeout_s: float = Field(default=60.0, alias="PROVIDER_TIMEOUT_S")
    provider_connect_timeout_s: float = Field(default=10.0, alias="PROVIDER_CONNECT_TIMEOUT_S")
    assistant_poll_interval_ms: int = Field(default=500, alias="ASSISTANT_POLL_INTERVAL_MS")
    assistant_poll_max_attempts: int = Field(default=60, alias="ASSISTANT_POLL_MAX_ATTEMPTS")
    max_context_chars: int = Field(default=8000, alias="MAX_CONTEXT_CHARS")
    relay_queue_size: int = Field(default=256, alias="RELAY_QUEUE_SIZE")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Reject unknown providers and non-positive tuning values."""
        if self.default_provider not in PROVIDER_IDS:
            raise ValueError(
                f"CHATRELAY_PROVIDER must be one of {', '.join(PROVIDER_IDS)}, "
                f"got {self.default_provider!r}"
            )

        positive = {
            "PROVIDER_TIMEOUT_S": self.provider_timeout_s,
            "PROVIDER_CONNECT_TIMEOUT_S": self.provider_connect_timeout_s,
            "ASSISTANT_POLL_INTERVAL_MS": self.assistant_poll_interval_ms,
            "ASSISTANT_POLL_MAX_ATTEMPTS": self.assistant_poll_max_attempts,
            "MAX_CONTEXT_CHARS": self.max_context_chars,
            "RELAY_QUEUE_SIZE": self.relay_queue_size,
            "ANTHROPIC_MAX_TOKENS": self.anthropic_max_tokens,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be > 0")

        return self

    @property
    def assistant_poll_interval_s(self) -> float:
        """Poll cadence in seconds."""
        return self.assistant_poll_interval_ms / 1000

    def provider_config(self, provider_id: str) -> ProviderConfig:
        """Return the read-only configuration for one provider.

        Args:
            provider_id: Provider id (see PROVIDER_IDS).

        Returns:
            ProviderConfig for the provider.

        Raises:
            KeyError: If provider_id is not a known provider.
        """
        if provider_id not in PROVIDER_IDS:
            raise KeyError(provider_id)

        supports_assistant = provider_id in ASSISTANT_CAPABLE_PROVIDERS
        assistant_ref = (
            getattr(self, f"{provider_id}_assistant_id") if supports_assistant else None
        )
        use_assistant = (
            getattr(self, f"{provider_id}_use_assistant") if supports_assistant else False
        )

        return ProviderConfig(
            provider=provider_id,
            api_key=getattr(self, f"{provider_id}_api_key") or None,
            model=getattr(self, f"{provider_id}_model"),
            assistant_ref=assistant_ref or None,
            use_assistant_mode=bool(use_assistant),
            definition=getattr(self, f"{provider_id}_definition") or "",
        )


class ClientSettings(BaseSettings):
    """Configuration for the client stream consumer."""

    relay_url: str = Field(default="http://localhost:8000/chat", alias="CHATRELAY_URL")
    history_path: str = Field(default=".chatrelay_history.json", alias="CHATRELAY_HISTORY_PATH")
    max_attempts: int = Field(default=3, alias="CLIENT_MAX_ATTEMPTS")
    backoff_base_ms: int = Field(default=1000, alias="CLIENT_BACKOFF_BASE_MS")
    backoff_cap_ms: int = Field(default=10_000, alias="CLIENT_BACKOFF_CAP_MS")
    idle_timeout_s: float = Field(default=60.0, alias="CLIENT_IDLE_TIMEOUT_S")
    connect_timeout_s: float = Field(default=10.0, alias="CLIENT_CONNECT_TIMEOUT_S")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_budget(self) -> "ClientSettings":
        """Ensure the retry budget and timeouts are usable."""
        if self.max_attempts < 1:
            raise ValueError("CLIENT_MAX_ATTEMPTS must be >= 1")
        if self.backoff_base_ms <= 0 or self.backoff_cap_ms < self.backoff_base_ms:
            raise ValueError("CLIENT_BACKOFF_CAP_MS must be >= CLIENT_BACKOFF_BASE_MS > 0")
        if self.idle_timeout_s <= 0:
            raise ValueError("CLIENT_IDLE_TIMEOUT_S must be > 0")
        if self.connect_timeout_s <= 0:
            raise ValueError("CLIENT_CONNECT_TIMEOUT_S must be > 0")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
