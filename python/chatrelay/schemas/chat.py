"""Chat request schemas.

POST /chat body:
- message: the new user message (absent, null or blank is reported
  in-band as Error("Message required"), not as an HTTP error)
- history: prior turns, oldest first
- context: optional page text appended to the system instructions
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict

from chatrelay.services.llm.types import Turn

HISTORY_ROLES = Literal["system", "user", "assistant"]


class HistoryTurn(BaseModel):
    """One prior conversation turn supplied by the client."""

    role: HISTORY_ROLES
    content: str

    model_config = ConfigDict(extra="ignore")

    def to_turn(self) -> Turn:
        return Turn(role=self.role, content=self.content)


class ChatMessageRequest(BaseModel):
    """Request schema for relaying one chat message."""

    message: str | None = None
    history: list[HistoryTurn] = []
    context: str | None = None

    def history_turns(self) -> list[Turn]:
        return [turn.to_turn() for turn in self.history]
