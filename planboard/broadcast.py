"""Realtime fan-out of board events.

Delivery is fire-and-forget and at-most-once: there is no replay log, so a
connection that misses an event resynchronizes from ``board-data`` on its
next join.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional, Protocol

from planboard.observability import record_broadcast
from planboard.participants import ParticipantTracker

logger = logging.getLogger("planboard.broadcast")


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


def envelope(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


class BroadcastRouter:
    """Tracks live sockets by connection id and routes events to them."""

    def __init__(self, tracker: ParticipantTracker) -> None:
        self._tracker = tracker
        self._lock = asyncio.Lock()
        self._connections: dict[str, Connection] = {}

    async def register(self, connection_id: str, connection: Connection) -> None:
        async with self._lock:
            self._connections[connection_id] = connection

    async def unregister(self, connection_id: str) -> None:
        async with self._lock:
            self._connections.pop(connection_id, None)

    async def send_to(self, connection_id: str, event: str, data: Any) -> int:
        return await self._deliver([connection_id], event, data)

    async def to_session(
        self,
        session_id: str,
        event: str,
        data: Any,
        exclude: Optional[str] = None,
    ) -> int:
        targets = [conn for conn in self._tracker.members(session_id) if conn != exclude]
        return await self._deliver(targets, event, data)

    async def to_all(self, event: str, data: Any, exclude: Optional[str] = None) -> int:
        async with self._lock:
            targets = [conn for conn in self._connections if conn != exclude]
        return await self._deliver(targets, event, data)

    async def _deliver(self, connection_ids: Iterable[str], event: str, data: Any) -> int:
        async with self._lock:
            targets = [
                (conn_id, self._connections[conn_id])
                for conn_id in connection_ids
                if conn_id in self._connections
            ]
        if not targets:
            return 0

        message = envelope(event, data)
        delivered = 0
        failed: list[str] = []
        for conn_id, connection in targets:
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception as exc:
                logger.warning(f"Dropping connection {conn_id} after failed {event} delivery: {exc}")
                failed.append(conn_id)

        if failed:
            async with self._lock:
                for conn_id in failed:
                    self._connections.pop(conn_id, None)
        record_broadcast(event, delivered, len(failed))
        return delivered
