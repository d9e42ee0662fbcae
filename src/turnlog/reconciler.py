"""Per-session merge of context snapshots and late TTS output.

The context dump is written when the LLM is called, so the reply to the
newest user message is usually missing from it. That reply shows up later as
one or more ``Generating TTS`` lines. On ``finalize`` the TTS texts that
follow the snapshot are joined onto the last turn, provided that turn has no
reply yet.

Per session::

    EMPTY --(context)--> AWAITING_MERGE --(finalize)--> MERGED
                              ^                            |
                              +--------(context)-----------+

Lines for one session must be ingested in non-decreasing timestamp order.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from .assembler import assemble_turns
from .models import (
    ContextSnapshot,
    SessionAccumulator,
    SessionState,
    TTSEvent,
    Turn,
    as_utc,
)
from .store import SessionStore

logger = logging.getLogger(__name__)


class SessionReconciler:
    """Owns accumulator mutation for every session in a ``SessionStore``.

    Parameters
    ----------
    store:
        Where accumulators live. Shared stores are fine; each operation
        holds the session's lock.
    prefer_universal:
        When true, a non-universal snapshot never replaces a universal one.
    """

    def __init__(
        self, store: SessionStore, *, prefer_universal: bool = False
    ) -> None:
        self._store = store
        self._prefer_universal = prefer_universal

    @property
    def store(self) -> SessionStore:
        return self._store

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest_context(self, session_id: str, snapshot: ContextSnapshot) -> None:
        """Replace the session's snapshot and re-derive its turns."""
        snapshot.captured_at = as_utc(snapshot.captured_at)
        with self._store.lock(session_id):
            acc = self._store.get_or_create(session_id, snapshot.captured_at)
            current = acc.latest_context
            if (
                self._prefer_universal
                and current is not None
                and current.universal
                and not snapshot.universal
            ):
                logger.debug(
                    "Ignoring non-universal context for %s, universal one held",
                    session_id,
                )
                return

            acc.latest_context = snapshot
            acc.turns = assemble_turns(snapshot.messages, snapshot.captured_at)
            acc.state = SessionState.AWAITING_MERGE
            self._prune_stale_tts(
                acc, snapshot.captured_at, superseding=current is not None
            )
            logger.debug(
                "Context for %s: %d messages, %d turns",
                session_id,
                len(snapshot.messages),
                len(acc.turns),
            )

    def ingest_tts(self, session_id: str, event: TTSEvent) -> None:
        """Buffer a synthesized-speech event until the session is finalized."""
        event = replace(event, timestamp=as_utc(event.timestamp))
        with self._store.lock(session_id):
            acc = self._store.get_or_create(session_id, event.timestamp)
            acc.pending_tts.append(event)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def finalize(self, session_id: str) -> list[Turn]:
        """Merge pending TTS into the last turn and return the session's turns.

        Safe to call repeatedly: a last turn that already has a reply is
        never touched again. Sessions without a snapshot yield ``[]``.
        """
        with self._store.lock(session_id):
            acc = self._store.get(session_id)
            if acc is None or acc.latest_context is None:
                return []
            # TTS may have arrived since an earlier finalize; _merge only
            # ever fills an empty reply.
            self._merge(acc)
            acc.state = SessionState.MERGED
            return [replace(t) for t in acc.turns]

    def state(self, session_id: str) -> SessionState:
        acc = self._store.get(session_id)
        return acc.state if acc is not None else SessionState.EMPTY

    def evict(self, session_id: str) -> list[Turn]:
        """Finalize *session_id* and drop it from the store."""
        with self._store.lock(session_id):
            turns = self.finalize(session_id)
            acc = self._store.remove(session_id)
        if acc is not None:
            logger.info(
                "Evicted session %s (%d turns, %d TTS events dropped)",
                session_id,
                len(turns),
                acc.dropped_tts,
            )
        return turns

    def evict_expired(self, now: datetime | None = None) -> dict[str, list[Turn]]:
        """Evict every session the store's policy considers expired."""
        return {sid: self.evict(sid) for sid in self._store.expired(now)}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _merge(acc: SessionAccumulator) -> None:
        snapshot = acc.latest_context
        if snapshot is None or not acc.turns:
            return
        last = acc.turns[-1]
        if last.assistant_message is not None:
            return

        captured_at = snapshot.captured_at
        recent = sorted(
            (e for e in acc.pending_tts if e.timestamp > captured_at),
            key=lambda e: e.timestamp,
        )
        texts = [e.text for e in recent if e.text]
        if not texts:
            return
        last.assistant_message = " ".join(texts)
        logger.info(
            "Merged %d TTS event(s) into turn %d of %s",
            len(texts),
            last.turn_id,
            acc.session_id,
        )

    @staticmethod
    def _prune_stale_tts(
        acc: SessionAccumulator, captured_at: datetime, *, superseding: bool
    ) -> None:
        # TTS spoken before this snapshot can never be merged into it.
        kept = [e for e in acc.pending_tts if e.timestamp > captured_at]
        dropped = len(acc.pending_tts) - len(kept)
        acc.pending_tts = kept
        if not dropped:
            return
        acc.dropped_tts += dropped
        if superseding:
            logger.warning(
                "Context for %s superseded %d pending TTS event(s); "
                "they will not be merged",
                acc.session_id,
                dropped,
            )
        else:
            logger.debug(
                "Discarded %d TTS event(s) spoken before the first context of %s",
                dropped,
                acc.session_id,
            )
