"""Data model shared by the parser, assembler and reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class LogLine:
    """One raw telemetry line plus the time it was observed."""

    raw_text: str
    timestamp: datetime
    session_id: str | None = None


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class ParsedMessage:
    """A single role/content entry recovered from a context dump."""

    role: Role
    content: str


@dataclass
class ContextSnapshot:
    """The full history as of one context-dump line."""

    messages: list[ParsedMessage]
    captured_at: datetime
    universal: bool = False  # "universal context" dumps


@dataclass(frozen=True)
class TTSEvent:
    text: str
    timestamp: datetime


@dataclass
class Turn:
    """One user utterance paired with at most one assistant reply."""

    turn_id: int
    user_message: str
    assistant_message: str | None
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn_id": self.turn_id,
            "user_message": self.user_message,
            "assistant_message": self.assistant_message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Conversation:
    """The finalized turns of one session."""

    session_id: str
    turns: list[Turn]

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "total_turns": len(self.turns),
            "turns": [t.to_dict() for t in self.turns],
        }

    def to_markdown(self) -> str:
        """Render the conversation as markdown, one section per turn."""
        parts: list[str] = [f"# Session {self.session_id}\n"]
        for turn in self.turns:
            parts.append(f"## Turn {turn.turn_id}\n")
            parts.append(f"**User:** {turn.user_message}\n")
            if turn.assistant_message is not None:
                parts.append(f"**Assistant:** {turn.assistant_message}\n")
        return "\n".join(parts)


class SessionState(str, Enum):
    EMPTY = "empty"
    AWAITING_MERGE = "awaiting_merge"
    MERGED = "merged"


@dataclass
class SessionAccumulator:
    """Mutable per-session working state.

    ``turns`` is derived from ``latest_context`` when the snapshot is
    ingested; ``dropped_tts`` counts TTS events that a newer snapshot made
    unmergeable.
    """

    session_id: str
    latest_context: ContextSnapshot | None = None
    turns: list[Turn] = field(default_factory=list)
    pending_tts: list[TTSEvent] = field(default_factory=list)
    state: SessionState = SessionState.EMPTY
    created_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)
    dropped_tts: int = 0
