"""Page-context injection.

The calling page may attach free text (the page it is embedded on) to a
chat request. It is treated as opaque text: collapsed, length-limited on a
sentence boundary when possible, and appended to the provider definition
before message assembly.
"""

import re

DEFAULT_MAX_CONTEXT_CHARS = 8000
TRUNCATION_MARKER = "\n\n[Content truncated for length...]"

CONTEXT_HEADER = "Current page content:\n\n"
CONTEXT_FOOTER = "\n\nPlease use this content as context when relevant to answer the user's questions."

_WHITESPACE = re.compile(r"\s+")
_SECONDARY_BREAKS = ("!", "?", ":", ";")


def truncate_context(text: str, max_chars: int = DEFAULT_MAX_CONTEXT_CHARS) -> str:
    """Collapse whitespace and cut overly long context.

    The cut prefers, in order: the last "." within the limit, the last of
    "! ? : ;", the last space, then a hard cut. A marker is appended
    whenever anything was dropped.
    """
    text = _WHITESPACE.sub(" ", text).strip()
    if len(text) <= max_chars:
        return text

    head = text[:max_chars]

    cut = head.rfind(".")
    if cut >= 0:
        head = head[: cut + 1]
    else:
        cut = max(head.rfind(mark) for mark in _SECONDARY_BREAKS)
        if cut >= 0:
            head = head[: cut + 1]
        else:
            cut = head.rfind(" ")
            if cut >= 0:
                head = head[:cut]

    return head + TRUNCATION_MARKER


def build_definition(
    definition: str | None,
    context: str | None,
    max_chars: int = DEFAULT_MAX_CONTEXT_CHARS,
) -> str:
    """Merge the provider definition with truncated page context."""
    definition = definition or ""
    if not context or not context.strip():
        return definition

    instruction = CONTEXT_HEADER + truncate_context(context, max_chars) + CONTEXT_FOOTER
    if not definition:
        return instruction
    return f"{definition}\n\n{instruction}"
