"""Client-side conversation history.

The client owns the transcript: it is persisted as a JSON list of
{role, content} objects and sent with every request. Writes go to a
temporary file first and replace the target atomically, so a crash never
leaves a half-written history behind.
"""

import json
import os
import tempfile
from pathlib import Path

from chatrelay.logging import get_logger
from chatrelay.services.llm.types import ROLES, Turn

logger = get_logger(__name__)


class HistoryStore:
    """Ordered list of turns backed by a JSON file."""

    def __init__(self, path: str | os.PathLike | None = None):
        """Load history from path; None keeps history in memory only."""
        self.path = Path(path) if path is not None else None
        self._turns: list[Turn] = self._load()

    @property
    def turns(self) -> list[Turn]:
        """Snapshot of the current history."""
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def append(self, role: str, content: str) -> Turn:
        """Append one turn and persist."""
        turn = Turn(role=role, content=content)
        self._turns.append(turn)
        self._save()
        return turn

    def clear(self) -> None:
        """Drop every turn. Only called on explicit user request."""
        self._turns = []
        self._save()

    def _load(self) -> list[Turn]:
        if self.path is None or not self.path.exists():
            return []

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("client.history.load_failed", error_type=type(e).__name__)
            return []

        if not isinstance(data, list):
            logger.warning("client.history.load_failed", error_type="not_a_list")
            return []

        turns = []
        for entry in data:
            if (
                isinstance(entry, dict)
                and entry.get("role") in ROLES
                and isinstance(entry.get("content"), str)
            ):
                turns.append(Turn(role=entry["role"], content=entry["content"]))
        return turns

    def _save(self) -> None:
        if self.path is None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([turn.to_dict() for turn in self._turns], ensure_ascii=False)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
