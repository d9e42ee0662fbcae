"""Turn building for agents that never log a context dump.

Those agents only leave a trail of events: VAD "User started/stopped
speaking" lines, RAG lookups carrying the transcription, and TTS lines with
the reply. ``build_event_turns`` replays that trail per session.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .extract import extract_session_id, is_tts_line, parse_tts_log
from .models import LogLine, Turn, as_utc

logger = logging.getLogger(__name__)

AUDIO_INPUT_PLACEHOLDER = "[Audio input]"

_STARTED_SPEAKING = ("User started speaking", "Emulating user started speaking")
_STOPPED_SPEAKING = ("User stopped speaking", "Emulating user stopped speaking")

_RAG_QUERY = re.compile(r"chars for:\s*['\"](.+?)['\"]")
_PREPROCESSED_QUERY = re.compile(r"Query preprocessed:.*→\s*['\"](.+?)['\"]")
_CONTEXT_USER_SINGLE = re.compile(r"'role':\s*'user',\s*'content':\s*'((?:[^'\\]|\\.)*?)'")
_CONTEXT_USER_DOUBLE = re.compile(r'"role":\s*"user",\s*"content":\s*"((?:[^"\\]|\\.)*?)"')


class LogFormat(str, Enum):
    CONTEXT = "context"
    EVENTS = "events"
    UNKNOWN = "unknown"


def detect_log_format(lines: Iterable[LogLine]) -> LogFormat:
    """Decide how a batch of lines should be turned into conversations.

    Context dumps win when present, since the reconciler already folds the
    TTS lines into them.
    """
    has_events = False
    for line in lines:
        text = line.raw_text
        if "context [" in text and ("'role'" in text or '"role"' in text):
            return LogFormat.CONTEXT
        if (
            any(m in text for m in _STARTED_SPEAKING + _STOPPED_SPEAKING)
            or is_tts_line(text)
        ):
            has_events = True
    return LogFormat.EVENTS if has_events else LogFormat.UNKNOWN


@dataclass
class _OpenTurn:
    timestamp: datetime
    index: int
    user_message: str | None = None
    assistant_message: str | None = None


def user_transcription(text: str) -> str | None:
    """Pull the user's words out of a RAG, preprocessing or context line."""
    transcription = None
    if "chars for:" in text:
        match = _RAG_QUERY.search(text)
        if match:
            transcription = match.group(1).strip().rstrip(".")

    if not transcription and "Query preprocessed:" in text:
        match = _PREPROCESSED_QUERY.search(text)
        if match:
            transcription = match.group(1).strip()

    if "Generating chat from universal context" in text or "context [" in text:
        matches = _CONTEXT_USER_SINGLE.findall(text) or _CONTEXT_USER_DOUBLE.findall(text)
        if matches:
            transcription = matches[-1].strip()

    return transcription or None


def build_event_turns(lines: Iterable[LogLine]) -> dict[str, list[Turn]]:
    """Rebuild turns per session from event lines.

    Lines without a session id are ignored. Each session's lines are sorted
    by timestamp before replay.
    """
    by_session: dict[str, list[LogLine]] = {}
    for line in lines:
        sid = line.session_id or extract_session_id(line.raw_text)
        if sid is None:
            continue
        by_session.setdefault(sid, []).append(line)

    result: dict[str, list[Turn]] = {}
    for sid, session_lines in by_session.items():
        session_lines.sort(key=lambda ln: as_utc(ln.timestamp))
        result[sid] = _replay_session(session_lines)
        logger.debug("Rebuilt %d event turns for %s", len(result[sid]), sid)
    return result


def _replay_session(lines: list[LogLine]) -> list[Turn]:
    closed: list[_OpenTurn] = []
    current: _OpenTurn | None = None
    opened = 0
    speaking_since: datetime | None = None

    def open_turn(at: datetime) -> _OpenTurn:
        nonlocal opened
        opened += 1
        return _OpenTurn(timestamp=as_utc(at), index=opened)

    for line in lines:
        text = line.raw_text
        transcription = user_transcription(text)

        if any(m in text for m in _STARTED_SPEAKING):
            if current is not None:
                closed.append(current)
                current = None
            speaking_since = line.timestamp

        if any(m in text for m in _STOPPED_SPEAKING):
            if current is None:
                current = open_turn(speaking_since or line.timestamp)
            speaking_since = None

        if transcription:
            if current is None:
                current = open_turn(line.timestamp)
            if not current.user_message:
                current.user_message = transcription

        if is_tts_line(text):
            tts = parse_tts_log(text)
            if tts:
                if current is None:
                    current = open_turn(line.timestamp)
                if current.assistant_message is None:
                    current.assistant_message = tts
                else:
                    current.assistant_message += " " + tts

    if current is not None:
        closed.append(current)

    turns: list[Turn] = []
    for t in closed:
        user_message = t.user_message
        # The first bot-only turn is the greeting, later ones are
        # utterances the transcriber never captured.
        if not user_message and t.assistant_message and t.index > 1:
            user_message = AUDIO_INPUT_PLACEHOLDER
        if not user_message:
            continue
        turns.append(
            Turn(
                turn_id=len(turns) + 1,
                user_message=user_message,
                assistant_message=t.assistant_message,
                timestamp=t.timestamp,
            )
        )
    return turns
