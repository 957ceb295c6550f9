"""Relay error taxonomy.

Every failure while serving a chat message maps to one LLMErrorClass and is
surfaced to the client as exactly one terminal ErrorEvent. None of these
errors escape a request; each request is isolated.

Error classes:
- E_VALIDATION: Missing/invalid input, no outbound call was made
- E_CONFIGURATION: Missing credentials or unknown provider, no outbound call
- E_TRANSPORT: Connection refused, DNS failure, timeout talking to a provider
- E_PROVIDER: Non-2xx HTTP status or explicit error payload from the provider
- E_POLL_TIMEOUT: Assistant run did not finish within the attempt budget
- E_RUN_FAILED: Assistant run ended failed/cancelled/expired
- E_INTERNAL: Anything else
"""

from enum import Enum

import httpx

from chatrelay.services.llm.types import ErrorEvent


class LLMErrorClass(str, Enum):
    """Normalized relay error classifications."""

    VALIDATION = "E_VALIDATION"
    CONFIGURATION = "E_CONFIGURATION"
    TRANSPORT = "E_TRANSPORT"
    PROVIDER = "E_PROVIDER"
    POLL_TIMEOUT = "E_POLL_TIMEOUT"
    RUN_FAILED = "E_RUN_FAILED"
    INTERNAL = "E_INTERNAL"


class LLMError(Exception):
    """Exception for relay errors.

    Attributes:
        error_class: The normalized error classification
        message: Human-readable error message (sent to the client)
        provider: The provider involved (if known)
    """

    error_class: LLMErrorClass = LLMErrorClass.INTERNAL

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        *,
        error_class: LLMErrorClass | None = None,
    ):
        if error_class is not None:
            self.error_class = error_class
        self.message = message
        self.provider = provider
        super().__init__(message)

    def to_event(self) -> ErrorEvent:
        """Terminal canonical event for this error."""
        return ErrorEvent(message=self.message, code=self.error_class.value)


class ValidationError(LLMError):
    """Invalid inbound request."""

    error_class = LLMErrorClass.VALIDATION


class ConfigurationError(LLMError):
    """Missing credentials, unknown provider or unsupported mode."""

    error_class = LLMErrorClass.CONFIGURATION


class TransportError(LLMError):
    """One outbound attempt failed below HTTP."""

    error_class = LLMErrorClass.TRANSPORT


class ProviderError(LLMError):
    """Provider answered with a non-2xx status or an error payload."""

    error_class = LLMErrorClass.PROVIDER

    def __init__(self, message: str, provider: str | None = None, *, status_code: int | None):
        self.status_code = status_code
        super().__init__(message, provider)


class PollTimeoutError(LLMError):
    """Assistant run did not reach a terminal status in time."""

    error_class = LLMErrorClass.POLL_TIMEOUT


class RunFailedError(LLMError):
    """Assistant run reached failed, cancelled or expired."""

    error_class = LLMErrorClass.RUN_FAILED

    def __init__(self, status: str, provider: str | None = None):
        self.status = status
        super().__init__(f"run {status}", provider)


def extract_provider_message(json_body: dict | None) -> str | None:
    """Pull the human-readable message out of a provider error body.

    Handles the shapes used by the supported providers:
    - {"error": {"message": "..."}} (OpenAI, Mistral, Perplexity, Anthropic, Gemini)
    - {"error": "..."}
    - {"message": "..."} / {"detail": "..."}
    """
    if not isinstance(json_body, dict):
        return None

    error = json_body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error

    for key in ("message", "detail"):
        value = json_body.get(key)
        if isinstance(value, str) and value:
            return value

    return None


def provider_error_from_response(
    provider: str, status_code: int, json_body: dict | None
) -> ProviderError:
    """Build the ProviderError for a non-2xx provider response."""
    message = f"API returned error: {status_code}"
    detail = extract_provider_message(json_body)
    if detail:
        message = f"{message} ({detail})"
    return ProviderError(message, provider, status_code=status_code)


def transport_error_from_exception(provider: str, exc: httpx.HTTPError) -> TransportError:
    """Build the TransportError for an httpx transport/timeout failure."""
    if isinstance(exc, httpx.TimeoutException):
        description = "request timed out"
    else:
        description = str(exc) or type(exc).__name__
    return TransportError(f"API request failed: {description}", provider)
