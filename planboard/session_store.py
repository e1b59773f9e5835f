"""Session store: session map ownership, access codes and snapshot persistence."""
from __future__ import annotations

import json
import logging
import os
import secrets
import string
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from planboard import config
from planboard.board import default_board
from planboard.errors import NotFoundError, PersistenceError
from planboard.migrations import load_session, migrate_board, serialize_session
from planboard.models import BoardState, Session, SessionHandle
from planboard.observability import record_persist_failure

logger = logging.getLogger("planboard.sessions")

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_access_code(length: int = config.ACCESS_CODE_LENGTH) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def load_template(path: Path) -> BoardState:
    """Load the board used to seed new sessions, falling back to the built-in default."""
    if not path.exists():
        return default_board()
    try:
        content = path.read_text()
        if not content.strip():
            return default_board()
        return BoardState.model_validate(migrate_board(json.loads(content)))
    except Exception as e:
        logger.error(f"Error loading board template {path}, using defaults: {e}")
        return default_board()


class SessionStore:
    """Owns every tracked session and the JSON snapshot they are persisted to."""

    def __init__(
        self,
        storage_path: Path,
        template: Optional[BoardState] = None,
        code_factory: Callable[[], str] = generate_access_code,
    ):
        self.storage_path = storage_path
        self.template = template or default_board()
        self._code_factory = code_factory
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def load(self) -> None:
        """Replace the in-memory map with the persisted one.

        A missing or unreadable file yields an empty store; a single bad
        record is skipped.
        """
        self._sessions = {}
        if not self.storage_path.exists():
            return

        try:
            content = self.storage_path.read_text()
            if not content.strip():
                return
            data = json.loads(content)
        except Exception as e:
            logger.error(f"Error loading sessions, starting empty: {e}")
            return

        records = data.get("sessions") if isinstance(data, dict) else None
        if not isinstance(records, dict):
            logger.error("Sessions file has no 'sessions' object, starting empty")
            return

        for session_id, raw in records.items():
            try:
                session = load_session(session_id, raw)
            except Exception as e:
                logger.error(f"Failed to load session {session_id}: {e}")
                continue
            # No connection survives a restart.
            session.participants.clear()
            self._sessions[session_id] = session
        logger.info(f"Loaded {len(self._sessions)} session(s) from {self.storage_path}")

    def persist(self) -> bool:
        """Write the full session map. Returns False (after logging) when the write fails."""
        try:
            self._write_snapshot()
        except PersistenceError as e:
            logger.error(f"Error saving sessions: {e}")
            record_persist_failure()
            return False
        return True

    def _write_snapshot(self) -> None:
        payload = {
            "sessions": {
                session_id: serialize_session(session)
                for session_id, session in self._sessions.items()
            }
        }
        tmp_name = None
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=self.storage_path.parent,
                prefix=f".{self.storage_path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self.storage_path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(str(e), path=str(self.storage_path)) from e

    def _unique_code(self) -> str:
        taken = {session.accessCode for session in self._sessions.values()}
        for _ in range(max(1, config.ACCESS_CODE_ATTEMPTS)):
            code = self._code_factory().upper()
            if code not in taken:
                return code
            logger.warning("Access code collision, generating another")
        raise RuntimeError("Could not generate a unique access code")

    def create_session(self) -> SessionHandle:
        session = Session(
            id=str(uuid.uuid4()),
            accessCode=self._unique_code(),
            createdAt=_utc_now(),
            boardState=self.template.model_copy(deep=True),
        )
        self._sessions[session.id] = session
        self.persist()
        logger.info(f"Created session {session.id}")
        return SessionHandle(sessionId=session.id, accessCode=session.accessCode)

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def find_by_id(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is None:
            raise NotFoundError("Session not found", sessionId=session_id)
        return session

    def find_by_code(self, code: str) -> Session:
        wanted = (code or "").strip().upper()
        if wanted:
            for session in self._sessions.values():
                if session.accessCode == wanted:
                    return session
        raise NotFoundError("Invalid access code", code=code)
