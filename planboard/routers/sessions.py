"""Session admission API."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from planboard.engine import BoardEngine
from planboard.errors import NotFoundError
from planboard.models import BoardState, JoinSessionRequest, JoinSessionResponse, SessionHandle

sessions_router = APIRouter(prefix="/api", tags=["sessions"])


def _engine(request: Request) -> BoardEngine:
    return request.app.state.engine


@sessions_router.post("/create-session", response_model=SessionHandle)
def create_session(request: Request):
    """Create a session seeded from the template board."""
    return _engine(request).store.create_session()


@sessions_router.post("/join-session", response_model=JoinSessionResponse)
def join_session(payload: JoinSessionRequest, request: Request):
    """Resolve an access code to its session and current board."""
    if not (payload.code or "").strip():
        raise HTTPException(status_code=400, detail="Access code required")
    try:
        session = _engine(request).store.find_by_code(payload.code)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return JoinSessionResponse(sessionId=session.id, boardState=session.boardState)


@sessions_router.get("/board/{session_id}", response_model=BoardState)
def get_board(session_id: str, request: Request):
    try:
        session = _engine(request).store.find_by_id(session_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return session.boardState
