"""Live connection bookkeeping, per session and process-wide."""
from __future__ import annotations

import logging
from typing import Optional

from planboard.errors import NotFoundError
from planboard.session_store import SessionStore

logger = logging.getLogger("planboard.participants")


class ParticipantTracker:
    """Tracks which connection is joined to which session.

    Per-session membership lives in ``Session.participants``; counts are
    always the size of a set, never a separately maintained number.
    """

    def __init__(self, store: SessionStore):
        self._store = store
        self._connected: set[str] = set()
        self._joined: dict[str, str] = {}

    @property
    def global_count(self) -> int:
        return len(self._connected)

    def session_count(self, session_id: str) -> int:
        session = self._store.get(session_id)
        return len(session.participants) if session else 0

    def members(self, session_id: str) -> set[str]:
        session = self._store.get(session_id)
        return set(session.participants) if session else set()

    def session_of(self, connection_id: str) -> Optional[str]:
        return self._joined.get(connection_id)

    def connect(self, connection_id: str) -> int:
        self._connected.add(connection_id)
        return self.global_count

    def join(self, session_id: str, connection_id: str) -> tuple[int, int]:
        """Join ``connection_id`` to a session; returns (session count, global count).

        A connection belongs to one session at a time, so joining a second
        session leaves the first.
        """
        session = self._store.find_by_id(session_id)
        previous = self._joined.get(connection_id)
        if previous is not None and previous != session_id:
            self.leave(previous, connection_id)
        session.participants.add(connection_id)
        self._connected.add(connection_id)
        self._joined[connection_id] = session_id
        logger.info(f"Connection {connection_id} joined session {session_id}")
        return len(session.participants), self.global_count

    def leave(self, session_id: str, connection_id: str) -> tuple[int, int]:
        """Inverse of ``join``. Unknown sessions or connections are a no-op."""
        session = self._store.get(session_id)
        if session is not None:
            session.participants.discard(connection_id)
        if self._joined.get(connection_id) == session_id:
            del self._joined[connection_id]
        self._connected.discard(connection_id)
        return (len(session.participants) if session else 0), self.global_count

    def disconnect(self, connection_id: str) -> tuple[Optional[str], int, int]:
        """Drop a connection everywhere; returns (session id or None, session count, global count)."""
        session_id = self._joined.get(connection_id)
        if session_id is None:
            self._connected.discard(connection_id)
            return None, 0, self.global_count
        session_count, global_count = self.leave(session_id, connection_id)
        return session_id, session_count, global_count
