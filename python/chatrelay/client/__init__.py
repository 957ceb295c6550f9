"""Client for the chat relay: stream consumer, retry budget and history."""

from chatrelay.client.backoff import RetryState
from chatrelay.client.consumer import ChatStreamConsumer, ConsumerResult, RelayUnavailableError
from chatrelay.client.history import HistoryStore

__all__ = [
    "ChatStreamConsumer",
    "ConsumerResult",
    "HistoryStore",
    "RelayUnavailableError",
    "RetryState",
]
