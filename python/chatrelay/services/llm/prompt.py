"""Provider-agnostic message assembly.

assemble() produces the ordered turn list sent to every provider. Each
adapter handles conversion to its provider-specific format.

Structure:
- One system turn first, only when a definition is given
- History turns verbatim, in caller order (no dedup, no reordering)
- Current user message last

Truncation of injected page context happens before this point (see
chatrelay.services.page_context).
"""

from collections.abc import Iterable

from chatrelay.services.llm.types import Turn


def assemble(
    definition: str | None,
    history: Iterable[Turn],
    current_message: str,
) -> list[Turn]:
    """Build the turn list for one request.

    Args:
        definition: System instructions; skipped when None or empty.
        history: Prior turns, already in conversation order.
        current_message: The new user message.

    Returns:
        List of Turn objects ready for adapter consumption.

    Example:
        >>> assemble("You are helpful.", [Turn("user", "hi"), Turn("assistant", "hello")], "bye")
        [Turn(role='system', content='You are helpful.'),
         Turn(role='user', content='hi'),
         Turn(role='assistant', content='hello'),
         Turn(role='user', content='bye')]
    """
    turns: list[Turn] = []
    if definition:
        turns.append(Turn(role="system", content=definition))
    turns.extend(history)
    turns.append(Turn(role="user", content=current_message))
    return turns

