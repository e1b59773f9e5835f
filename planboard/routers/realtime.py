"""Realtime board channel over WebSocket.

Frames in both directions are ``{"event": <name>, "data": <payload>}``.
"""
from __future__ import annotations

import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from planboard.engine import BoardEngine

realtime_router = APIRouter(tags=["realtime"])
logger = logging.getLogger("planboard.realtime")


def _decode(text: str) -> tuple[str, object] | None:
    try:
        message = json.loads(text)
    except ValueError:
        return None
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        return None
    return message["event"], message.get("data")


@realtime_router.websocket("/ws")
async def board_channel(websocket: WebSocket):
    engine: BoardEngine = websocket.app.state.engine
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    await engine.connect(connection_id, websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            text = message.get("text")
            # Binary frames carry no {event, data} envelope.
            decoded = _decode(text) if text is not None else None
            if decoded is None:
                await engine.broadcaster.send_to(
                    connection_id,
                    "error",
                    {"code": "VALIDATION_ERROR", "message": "Frames must be {event, data} objects"},
                )
                continue

            event, data = decoded
            if event == "join-session":
                await engine.join(connection_id, data)
            elif event == "leave-session":
                await engine.leave(connection_id)
            else:
                await engine.submit(connection_id, event, data)
    except WebSocketDisconnect:
        pass
    finally:
        await engine.disconnect(connection_id)
