"""
CC LIVE - HTTP/WebSocket boundary for the live session index.

Serves session summaries and full timelines from the in-memory index and
pushes a "sessions_changed" message to WebSocket clients whenever the
watcher replaces a session.

Usage:
    python run.py
    # or: uvicorn cclive.api:app --port 5174
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cclive.config import Settings
from cclive.models import Session, SessionListResponse
from cclive.store import ScanError, SessionStore

logger = logging.getLogger("cclive.api")


class AppError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message


# ═══════════════════════════════════════════════════════════════════════════════
# WebSocket Connection Manager
# ═══════════════════════════════════════════════════════════════════════════════


class ConnectionManager:
    def __init__(self):
        self._clients: set[WebSocket] = set()

    def add(self, ws: WebSocket) -> None:
        self._clients.add(ws)

    def remove(self, ws: WebSocket) -> None:
        self._clients.discard(ws)

    async def broadcast(self, event: dict) -> None:
        disconnected: list[WebSocket] = []
        for ws in list(self._clients):
            try:
                await ws.send_json(event)
            except Exception:
                disconnected.append(ws)

        for ws in disconnected:
            self.remove(ws)

    @property
    def client_count(self) -> int:
        return len(self._clients)


async def _forward_updates(store: SessionStore, manager: ConnectionManager) -> None:
    """Relay index-changed signals from the store to WebSocket clients."""
    sub = store.subscribe()
    try:
        async for _ in sub:
            await manager.broadcast({
                "type": "sessions_changed",
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
                "data": {"session_count": len(store.index)},
            })
    finally:
        sub.close()


# ═══════════════════════════════════════════════════════════════════════════════
# FastAPI Application + Routes
# ═══════════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: scan, watch, and shut down."""
    start_time = time.monotonic()

    settings: Settings = getattr(app.state, "settings", None) or Settings.from_env()
    projects_dir = settings.get_projects_dir()
    store = SessionStore(
        projects_dir,
        debounce_ms=settings.watch_debounce_ms,
        max_line_bytes=settings.max_line_bytes,
    )

    logger.info(f"Scanning {projects_dir} ...")
    scan_error: str | None = None
    try:
        await asyncio.to_thread(store.scan)
    except ScanError as e:
        logger.error(str(e))
        scan_error = str(e)

    manager = ConnectionManager()
    forwarder = asyncio.create_task(_forward_updates(store, manager))

    if settings.watch_enabled and scan_error is None:
        await store.start_watching()
        logger.info("File watcher started")

    app.state.settings = settings
    app.state.store = store
    app.state.connection_manager = manager
    app.state.scan_error = scan_error
    app.state.start_time = start_time

    yield

    logger.info("Shutting down...")
    await store.stop()
    forwarder.cancel()
    try:
        await forwarder
    except asyncio.CancelledError:
        pass
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(
        lifespan=lifespan,
        title="CC LIVE",
        description="Live index of Claude Code session transcripts",
        version="0.1.0",
    )
    if settings is not None:
        app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins if settings else ["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {"code": exc.code, "message": exc.message}},
        )

    @app.get("/api/sessions", response_model=SessionListResponse)
    async def list_sessions(
        request: Request,
        project: str | None = Query(None),
    ):
        store = _store(request)
        if project is None:
            project = request.app.state.settings.project_filter
        sessions = store.list(project)
        return SessionListResponse(sessions=sessions, total_count=len(sessions), project=project)

    @app.get("/api/sessions/{session_id}", response_model=Session)
    async def get_session(request: Request, session_id: str):
        session = _store(request).get(session_id)
        if session is None:
            raise AppError(404, "SESSION_NOT_FOUND", f"Session {session_id} not found")
        return session

    @app.get("/api/health")
    async def health_check(request: Request):
        store = _store(request)
        return {
            "status": "ok" if request.app.state.scan_error is None else "degraded",
            "uptime_seconds": round(time.monotonic() - request.app.state.start_time, 1),
            "sessions_indexed": len(store.index),
            "projects_watched": len(store.watched_dirs),
            "watcher_active": store.watcher.is_running,
            "websocket_clients": request.app.state.connection_manager.client_count,
            "scan_error": request.app.state.scan_error,
        }

    @app.websocket("/ws/live")
    async def websocket_live(websocket: WebSocket):
        """Push a message whenever the index changes; clients re-fetch on receipt."""
        await websocket.accept()
        mgr: ConnectionManager = websocket.app.state.connection_manager
        mgr.add(websocket)
        try:
            while True:
                # clients only send keepalives; anything else is ignored
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.warning("WebSocket error", exc_info=True)
        finally:
            mgr.remove(websocket)

    return app


def _store(request: Request) -> SessionStore:
    return request.app.state.store


app = create_app(Settings.from_env())
