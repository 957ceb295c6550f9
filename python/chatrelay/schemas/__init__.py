"""Pydantic request schemas."""

from chatrelay.schemas.chat import ChatMessageRequest, HistoryTurn

__all__ = ["ChatMessageRequest", "HistoryTurn"]
