"""ConversationEngine — routes log lines into the reconciler."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from .context import parse_context_log
from .events import LogFormat, build_event_turns, detect_log_format
from .extract import extract_session_id, is_context_line, is_tts_line, parse_tts_log
from .models import ContextSnapshot, LogLine, SessionState, TTSEvent, Turn, as_utc
from .reconciler import SessionReconciler
from .store import EvictionPolicy, SessionStore

logger = logging.getLogger(__name__)


class ConversationEngine:
    """High-level API for turning a stream of log lines into conversations.

    Parameters
    ----------
    store:
        Accumulator store to use. A fresh one is created when omitted.
    eviction:
        Policy for a freshly created store; ignored when *store* is given.
    prefer_universal:
        Keep a "universal context" snapshot over later plain ones.
    """

    def __init__(
        self,
        *,
        store: SessionStore | None = None,
        eviction: EvictionPolicy | None = None,
        prefer_universal: bool = False,
    ) -> None:
        self._store = store if store is not None else SessionStore(eviction)
        self._reconciler = SessionReconciler(
            self._store, prefer_universal=prefer_universal
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, line: LogLine) -> str | None:
        """Route one line. Returns the session id it was attributed to.

        Lines without a session id, and lines that are neither context dumps
        nor TTS output, are ignored (``None``).
        """
        text = line.raw_text
        session_id = line.session_id or extract_session_id(text)
        if session_id is None:
            return None

        if is_context_line(text):
            snapshot = ContextSnapshot(
                messages=parse_context_log(text),
                captured_at=line.timestamp,
                universal="universal context" in text,
            )
            self._reconciler.ingest_context(session_id, snapshot)
            return session_id

        if is_tts_line(text):
            tts = parse_tts_log(text)
            if tts is None:
                return None
            self._reconciler.ingest_tts(
                session_id, TTSEvent(text=tts, timestamp=line.timestamp)
            )
            return session_id

        return None

    def ingest_many(self, lines: Iterable[LogLine]) -> int:
        """Ingest lines in order. Returns how many were routed."""
        n = 0
        for line in lines:
            if self.ingest(line) is not None:
                n += 1
        return n

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def finalize(self, session_id: str) -> list[Turn]:
        return self._reconciler.finalize(session_id)

    def finalize_all(self) -> dict[str, list[Turn]]:
        """Finalize every known session; sessions without turns are skipped."""
        result: dict[str, list[Turn]] = {}
        for sid in self._store.session_ids():
            turns = self._reconciler.finalize(sid)
            if turns:
                result[sid] = turns
        return result

    def evict_expired(self, now: datetime | None = None) -> dict[str, list[Turn]]:
        """Finalize and drop sessions expired under the store's policy."""
        return self._reconciler.evict_expired(now)

    def state(self, session_id: str) -> SessionState:
        return self._reconciler.state(session_id)

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> list[str]:
        return self._store.session_ids()

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def reconciler(self) -> SessionReconciler:
        return self._reconciler


def normalize_lines(
    lines: Iterable[LogLine],
    *,
    log_format: LogFormat | None = None,
    prefer_universal: bool = False,
) -> dict[str, list[Turn]]:
    """Rebuild every conversation in a finished batch of lines.

    *log_format* ``None`` detects the format from the lines themselves. In a
    context batch, sessions that never logged a context dump are rebuilt from
    their event lines.
    """
    lines = list(lines)
    fmt = log_format or detect_log_format(lines)
    logger.info("Normalizing %d lines as %s logs", len(lines), fmt.value)

    if fmt is LogFormat.EVENTS:
        return {sid: turns for sid, turns in build_event_turns(lines).items() if turns}
    if fmt is LogFormat.UNKNOWN:
        return {}

    engine = ConversationEngine(prefer_universal=prefer_universal)
    lines.sort(key=lambda ln: as_utc(ln.timestamp))
    engine.ingest_many(lines)
    result = engine.finalize_all()

    # Sessions that never logged a context dump still get event turns.
    event_only = [
        ln
        for ln in lines
        if _has_no_snapshot(engine, ln.session_id or extract_session_id(ln.raw_text))
    ]
    for sid, turns in build_event_turns(event_only).items():
        if turns:
            result[sid] = turns
    return result


def _has_no_snapshot(engine: ConversationEngine, session_id: str | None) -> bool:
    if session_id is None:
        return False
    acc = engine.store.get(session_id)
    return acc is None or acc.latest_context is None
