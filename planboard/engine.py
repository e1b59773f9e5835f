"""Connection lifecycle for the realtime board channel.

Wires the participant tracker, the broadcast router and the mutation
processor around one session store:

* connect    -> everyone gets the new global participant count
* join       -> joiner gets the board and counts, the session gets user-joined
* mutation   -> apply + persist, then fan the canonical event out
* disconnect -> session gets user-left, everyone gets the new global count

State changes and the broadcasts describing them happen under one lock, so
every connection sees events in the order they were applied.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from planboard.broadcast import BroadcastRouter, Connection
from planboard.errors import NotFoundError, PlanboardError
from planboard.mutations import MutationProcessor
from planboard.participants import ParticipantTracker
from planboard.session_store import SessionStore

logger = logging.getLogger("planboard.realtime")


class BoardEngine:
    def __init__(self, store: SessionStore):
        self.store = store
        self.tracker = ParticipantTracker(store)
        self.broadcaster = BroadcastRouter(self.tracker)
        self.processor = MutationProcessor(store)
        self._lock = asyncio.Lock()

    async def connect(self, connection_id: str, connection: Connection) -> None:
        async with self._lock:
            await self.broadcaster.register(connection_id, connection)
            global_count = self.tracker.connect(connection_id)
            logger.info(f"Connection {connection_id} opened")
            await self.broadcaster.to_all("global-participant-count", global_count)

    async def join(self, connection_id: str, session_id: Any) -> bool:
        async with self._lock:
            return await self._join(connection_id, session_id)

    async def _join(self, connection_id: str, session_id: Any) -> bool:
        previous = self.tracker.session_of(connection_id)
        try:
            session = self.store.find_by_id(str(session_id))
            session_count, global_count = self.tracker.join(session.id, connection_id)
        except NotFoundError as e:
            await self.broadcaster.send_to(connection_id, "error", e.to_dict())
            return False

        if previous is not None and previous != session.id:
            await self._announce_departure(previous, connection_id)

        await self.broadcaster.send_to(connection_id, "board-data", session.boardState.model_dump())
        await self.broadcaster.send_to(connection_id, "participant-count", session_count)
        await self.broadcaster.send_to(connection_id, "global-participant-count", global_count)

        await self.broadcaster.to_session(session.id, "user-joined", {"userId": connection_id}, exclude=connection_id)
        await self.broadcaster.to_session(session.id, "participant-count", session_count, exclude=connection_id)
        return True

    async def leave(self, connection_id: str) -> None:
        """Leave the current session but keep the connection open."""
        async with self._lock:
            session_id = self.tracker.session_of(connection_id)
            if session_id is None:
                return
            self.tracker.leave(session_id, connection_id)
            # Still connected, so it still counts globally.
            self.tracker.connect(connection_id)
            await self._announce_departure(session_id, connection_id)

    async def submit(self, connection_id: str, kind: str, payload: Any) -> bool:
        """Apply a mutation on behalf of a connection and broadcast the result.

        Rejected mutations are reported back to the originator only.
        """
        async with self._lock:
            return await self._submit(connection_id, kind, payload)

    async def _submit(self, connection_id: str, kind: str, payload: Any) -> bool:
        session_id = self.tracker.session_of(connection_id)
        if session_id is None:
            logger.info(f"Ignoring {kind} from {connection_id}: not joined to a session")
            await self.broadcaster.send_to(
                connection_id,
                "error",
                {"code": NotFoundError.error_code, "message": "Join a session first", "kind": kind},
            )
            return False

        try:
            result = await self.processor.apply(session_id, kind, payload)
        except PlanboardError as e:
            logger.info(f"Rejected {kind} in session {session_id}: {e.message}")
            await self.broadcaster.send_to(connection_id, "error", {**e.to_dict(), "kind": kind})
            return False

        exclude = None if result.include_sender else connection_id
        await self.broadcaster.to_session(session_id, result.event, result.data, exclude=exclude)
        return True

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            session_id, session_count, global_count = self.tracker.disconnect(connection_id)
            await self.broadcaster.unregister(connection_id)
            logger.info(f"Connection {connection_id} closed")

            await self.broadcaster.to_all("global-participant-count", global_count)
            if session_id is not None:
                await self.broadcaster.to_session(session_id, "user-left", {"userId": connection_id})
                await self.broadcaster.to_session(session_id, "participant-count", session_count)

    async def _announce_departure(self, session_id: str, connection_id: str) -> None:
        await self.broadcaster.to_session(session_id, "user-left", {"userId": connection_id})
        await self.broadcaster.to_session(
            session_id, "participant-count", self.tracker.session_count(session_id)
        )
