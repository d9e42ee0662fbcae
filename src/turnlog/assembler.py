"""Pair parsed messages into numbered turns."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from .cleaner import clean_user_message
from .models import ParsedMessage, Role, Turn, utcnow


def assemble_turns(
    messages: Sequence[ParsedMessage],
    timestamp: datetime | None = None,
) -> list[Turn]:
    """Build turns from an ordered message list.

    Each user message opens a turn; an assistant message directly after it
    becomes the reply. System messages and unanswered assistant messages are
    skipped. Turns whose cleaned user text is blank are dropped before
    numbering, so ids are contiguous from 1.

    *timestamp* is stamped on every turn (defaults to now, UTC).
    """
    stamp = timestamp or utcnow()
    turns: list[Turn] = []
    i = 0
    while i < len(messages):
        msg = messages[i]
        i += 1
        if msg.role is not Role.USER:
            continue

        user_message = clean_user_message(msg.content)
        assistant_message: str | None = None
        if i < len(messages) and messages[i].role is Role.ASSISTANT:
            assistant_message = messages[i].content
            i += 1

        if not user_message or not user_message.strip():
            continue
        turns.append(
            Turn(
                turn_id=len(turns) + 1,
                user_message=user_message,
                assistant_message=assistant_message,
                timestamp=stamp,
            )
        )
    return turns
