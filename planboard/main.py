"""Planboard FastAPI backend — main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from planboard import config
from planboard.engine import BoardEngine
from planboard.routers.realtime import realtime_router
from planboard.routers.sessions import sessions_router
from planboard.session_store import SessionStore, load_template
from planboard.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("planboard")


def build_store() -> SessionStore:
    store = SessionStore(config.SESSIONS_PATH, template=load_template(config.TEMPLATE_PATH))
    store.load()
    return store


def create_app(store: Optional[SessionStore] = None) -> FastAPI:
    """Build the application; ``store`` overrides the configured data files."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle."""
        logger.info("Planboard backend starting up")
        initialize_observability(app)
        if getattr(app.state, "engine", None) is None:
            app.state.engine = BoardEngine(build_store())

        yield

        logger.info("Planboard backend shutting down")
        app.state.engine.store.persist()
        shutdown_observability(app)

    app = FastAPI(
        title="Planboard API",
        description="Realtime collaborative roadmap board",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = BoardEngine(store) if store is not None else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            config.FRONTEND_ORIGIN,
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(sessions_router)
    app.include_router(realtime_router)

    @app.get("/api/health")
    def health():
        """Health check endpoint."""
        engine = app.state.engine
        return {
            "status": "ok",
            "sessions": len(engine.store) if engine else 0,
            "connections": engine.tracker.global_count if engine else 0,
        }

    # The board UI is served by whatever sits in the static dir; API routes win.
    if config.STATIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=str(config.STATIC_DIR), html=True), name="static")

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("planboard.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
