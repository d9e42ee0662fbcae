"""In-memory session accumulator store.

Holds one ``SessionAccumulator`` per session id and one re-entrant lock per
session. The store never evicts on its own: callers ask it which sessions
have expired under its ``EvictionPolicy`` and remove them.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from .models import SessionAccumulator, as_utc, utcnow


@dataclass(frozen=True)
class EvictionPolicy:
    """Bounds on how long an accumulator may live.

    Parameters
    ----------
    max_idle:
        Expire a session when no line has been seen for this long.
    max_age:
        Expire a session this long after its first line, active or not.
    """

    max_idle: timedelta | None = None
    max_age: timedelta | None = None

    def is_expired(self, acc: SessionAccumulator, now: datetime) -> bool:
        if self.max_idle is not None and now - acc.last_seen_at >= self.max_idle:
            return True
        if self.max_age is not None and now - acc.created_at >= self.max_age:
            return True
        return False


class SessionStore:
    """Session id -> accumulator mapping with per-session locks."""

    def __init__(self, policy: EvictionPolicy | None = None) -> None:
        self._policy = policy or EvictionPolicy()
        self._sessions: dict[str, SessionAccumulator] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    @property
    def policy(self) -> EvictionPolicy:
        return self._policy

    def lock(self, session_id: str) -> threading.RLock:
        """Return the lock serializing mutations of *session_id*."""
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.RLock()
            return lock

    def get(self, session_id: str) -> SessionAccumulator | None:
        """Return the accumulator or ``None``."""
        return self._sessions.get(session_id)

    def get_or_create(
        self, session_id: str, seen_at: datetime | None = None
    ) -> SessionAccumulator:
        """Return the accumulator for *session_id*, creating it on first use.

        *seen_at* (the timestamp of the line being ingested) advances the
        session's idle clock.
        """
        seen_at = as_utc(seen_at) if seen_at is not None else utcnow()
        with self._guard:
            acc = self._sessions.get(session_id)
            if acc is None:
                acc = SessionAccumulator(
                    session_id=session_id, created_at=seen_at, last_seen_at=seen_at
                )
                self._sessions[session_id] = acc
            elif seen_at > acc.last_seen_at:
                acc.last_seen_at = seen_at
            return acc

    def remove(self, session_id: str) -> SessionAccumulator | None:
        """Drop a session; returns its accumulator if it existed."""
        with self._guard:
            self._locks.pop(session_id, None)
            return self._sessions.pop(session_id, None)

    def expired(self, now: datetime | None = None) -> list[str]:
        """Session ids the eviction policy considers expired at *now*."""
        now = as_utc(now) if now is not None else utcnow()
        with self._guard:
            return [
                sid
                for sid, acc in self._sessions.items()
                if self._policy.is_expired(acc, now)
            ]

    def session_ids(self) -> list[str]:
        with self._guard:
            return list(self._sessions)

    def clear(self) -> int:
        """Drop every session. Returns how many were dropped."""
        with self._guard:
            n = len(self._sessions)
            self._sessions.clear()
            self._locks.clear()
            return n

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
