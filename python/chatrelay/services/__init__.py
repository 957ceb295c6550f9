"""Business logic services.

Services are called by route handlers and orchestrate the relay core.
"""

from chatrelay.services.chat import stream_chat, stream_chat_sse
from chatrelay.services.page_context import build_definition, truncate_context

__all__ = [
    "stream_chat",
    "stream_chat_sse",
    "build_definition",
    "truncate_context",
]
