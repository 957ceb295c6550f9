"""Log guard utilities.

- hash_text: stable SHA-256 hex digest for log correlation
- safe_kv: log guard that blocks forbidden keys at call site

Never-log policy:
- API keys and bearer tokens
- User messages and history content
- Injected page context
- Provider request and response bodies
- Generated text

Allowed (with suffix):
- _chars, _length: length of text
- _sha256, _hash: hash of text
"""

import hashlib
import os

import structlog

FORBIDDEN_KEYS = frozenset(
    {
        "prompt",
        "content",
        "message",
        "history",
        "context",
        "definition",
        "api_key",
        "bearer",
        "token",
        "secret",
        "authorization",
        "raw_body",
        "text",
    }
)

REDACTED_SUFFIXES = ("_sha256", "_hash", "_length", "_chars")


def hash_text(value: str) -> str:
    """SHA-256 hex digest of a string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _has_redacted_suffix(key: str) -> bool:
    return any(key.endswith(suffix) for suffix in REDACTED_SUFFIXES)


def safe_kv(*, _env: str | None = None, **kwargs) -> dict:
    """Validate that no forbidden keys are present unless already redacted.

    Raises ValueError in local/test environments if a forbidden key is used
    without a redacted suffix. In staging/prod, logs a warning instead.

    Usage:
        logger.info("relay.stream.started", **safe_kv(
            provider="openai",
            turn_count=3,
            message_chars=1234,     # OK: _chars suffix
            # message="hello",      # BLOCKED: forbidden key
        ))

    Args:
        _env: Override for CHATRELAY_ENV (test-only). If None, reads from env.
        **kwargs: Keyword arguments to validate and return.

    Returns:
        The same kwargs dict, after validation.
    """
    violations = [
        key for key in kwargs if key in FORBIDDEN_KEYS and not _has_redacted_suffix(key)
    ]

    if violations:
        msg = f"Forbidden log keys without redacted suffix: {violations}"
        env = _env or os.environ.get("CHATRELAY_ENV", "local")
        if env in ("local", "test"):
            raise ValueError(msg)
        structlog.get_logger("chatrelay.services.redact").warning(
            "safe_kv_violation", forbidden_keys=violations
        )

    return kwargs
