"""FastAPI application for the terminal session server.

Routes:

    GET    /health               -> {"status": "ok", ...}
    GET    /api/config           -> {"ingressPath": "..."}
    GET    /api/sessions         -> [{id, name, createdAt, lastActivity, alive, clientCount}]
    POST   /api/sessions         <- {"name": "build"}  -> {id, name}
    DELETE /api/sessions/{id}    -> {"ok": true}
    WS     /api/ws?session=<id>  terminal stream (see termhost.domain.models)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from termhost.config.settings import Settings
from termhost.domain.models import (
    ClientMessage,
    CreateSessionRequest,
    ErrorMessage,
    InputMessage,
    OutputMessage,
    ResizeMessage,
    SessionCreated,
    SessionInfo,
    SessionMessage,
)
from termhost.server.connection import WebSocketConnection
from termhost.server.lifecycle import SessionLifecycle
from termhost.store.sessions import SessionStore
from termhost.terminal.process import SpawnError
from termhost.terminal.registry import SessionRegistry, UnknownSessionError

logger = logging.getLogger(__name__)

# RFC 6455 policy violation
WS_POLICY_VIOLATION = 1008

_client_message = TypeAdapter(ClientMessage)


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = 0
    live_sessions: int = Field(default=0, serialization_alias="liveSessions")


class IngressConfig(BaseModel):
    ingress_path: str = Field(default="", serialization_alias="ingressPath")


def create_app(
    settings: Settings | None = None,
    registry: SessionRegistry | None = None,
    store: SessionStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Server configuration. Defaults to ``Settings()``.
        registry: Optional pre-built registry (for testing).
        store: Optional pre-built metadata store (for testing).
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Startup
        if app.state.store is None:
            # StoreInitError propagates and aborts startup
            app.state.store = SessionStore(settings.storage.sessions_dir)
        if app.state.registry is None:
            app.state.registry = SessionRegistry(
                terminal=settings.terminal,
                launch_config_path=settings.storage.launch_config_path,
            )
        app.state.lifecycle = SessionLifecycle(app.state.registry, app.state.store)
        logger.info(
            "Session server started (%d stored session(s))", len(app.state.store)
        )
        yield
        # Shutdown
        app.state.registry.shutdown()
        logger.info("Session server stopped")

    app = FastAPI(
        title="termhost",
        description="Browser-hosted terminal sessions",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.registry = registry
    app.state.store = store
    app.state.lifecycle = None

    @app.get("/health")
    async def health_check() -> HealthResponse:
        lifecycle: SessionLifecycle = app.state.lifecycle
        live = [s for s in lifecycle.registry.list_sessions() if s.alive]
        return HealthResponse(
            sessions=len(lifecycle.store),
            live_sessions=len(live),
        )

    @app.get("/api/config")
    async def get_config(request: Request) -> IngressConfig:
        # Home Assistant ingress publishes the add-on's base path here
        return IngressConfig(ingress_path=request.headers.get("x-ingress-path", ""))

    @app.get("/api/sessions")
    async def list_sessions() -> list[SessionInfo]:
        lifecycle: SessionLifecycle = app.state.lifecycle
        return lifecycle.list()

    @app.post("/api/sessions")
    async def create_session(body: CreateSessionRequest | None = None) -> SessionCreated:
        lifecycle: SessionLifecycle = app.state.lifecycle
        name = body.name if body is not None else None
        try:
            return lifecycle.create(name)
        except SpawnError as e:
            logger.error("Session creation failed: %s", e)
            raise HTTPException(status_code=500, detail=str(e)) from e

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str) -> dict[str, bool]:
        lifecycle: SessionLifecycle = app.state.lifecycle
        lifecycle.delete(session_id)
        return {"ok": True}

    @app.websocket("/api/ws")
    async def terminal_socket(websocket: WebSocket, session: str | None = None) -> None:
        await websocket.accept()
        lifecycle: SessionLifecycle = app.state.lifecycle

        if not session:
            await _reject(websocket, "Missing session parameter")
            return

        try:
            term = lifecycle.open(session)
        except UnknownSessionError as e:
            await _reject(websocket, str(e))
            return
        except SpawnError as e:
            logger.error("Cannot start session %s: %s", session, e)
            await _reject(websocket, str(e))
            return

        registry = lifecycle.registry
        conn = WebSocketConnection(websocket)
        try:
            backlog = registry.attach_client(session, conn)
        except UnknownSessionError as e:
            # Destroyed between open() and attach
            await _reject(websocket, str(e))
            return

        conn.start(
            [SessionMessage(id=term.id, name=term.name, alive=term.alive)]
            + [OutputMessage(data=chunk) for chunk in backlog]
        )

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000))
                raw = frame.get("text")
                if raw is None:
                    logger.debug("Ignoring binary frame on session %s", session)
                    continue
                try:
                    message = _client_message.validate_json(raw)
                except ValidationError:
                    logger.debug("Ignoring malformed message on session %s", session)
                    continue
                if isinstance(message, InputMessage):
                    registry.write_to_session(session, message.data)
                elif isinstance(message, ResizeMessage):
                    registry.resize_session(session, message.cols, message.rows)
        except WebSocketDisconnect:
            logger.debug("Client disconnected from session %s", session)
        except RuntimeError as e:
            logger.debug("Connection error on session %s: %s", session, e)
        finally:
            registry.detach_client(session, conn)
            await conn.close()

    return app


async def _reject(websocket: WebSocket, message: str) -> None:
    """Tell the client why it cannot attach, then close the socket."""
    await websocket.send_json(ErrorMessage(message=message).model_dump())
    await websocket.close(code=WS_POLICY_VIOLATION)


def main() -> None:
    """Entry point for running the server standalone."""
    from termhost.config.settings import load_settings

    settings = load_settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
