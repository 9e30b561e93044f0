"""
FastAPI Application - WebSocket sync endpoint plus a small REST surface.

Endpoints:
    WS     /ws?session=<code>           Join a session and sync in real time
    GET    /ws                          426: the endpoint requires an upgrade
    GET    /                            Collaboration page
    GET    /health                      Health check
    GET    /api/v1/session-code         Generate a new session code
    GET    /api/v1/sessions             List live sessions
    GET    /api/v1/sessions/{name}      Current state of one session

Sync protocol (JSON text frames):
    {"type": "text-update", "content": "..."}
    {"type": "column-update", "content": "..."}
    {"type": "card-update", "cardId": "...", "cardIndex": 0, "data": ...}
    {"type": "card-delete", "cardId": "..."}

Any other ``type`` is relayed untouched. On join, the client first
receives the current state as text -> column -> cards, then live frames
from the other members. A client never receives its own frames.
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging
import os

from .. import __version__
from ..session import SessionRegistry
from ..session.state import UNSET
from ..codes import generate_session_code

logger = logging.getLogger(__name__)

# Environment configuration
ALLOWED_ORIGINS = os.getenv("STORYSYNC_ALLOWED_ORIGINS", "*").split(",")
MAX_SESSION_NAME_LENGTH = 128


def create_app(registry: Optional[SessionRegistry] = None):
    """
    Create the FastAPI application.

    Args:
        registry: Optional SessionRegistry instance (creates new if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect, status
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .page import INDEX_HTML
    from .schemas import (
        ErrorCode,
        ErrorResponse,
        CardInfo,
        SessionCodeResponse,
        SessionSummary,
        SessionListResponse,
        SessionStateResponse,
        HealthResponse,
    )

    session_registry = registry or SessionRegistry()

    @asynccontextmanager
    async def lifespan(app):
        yield
        logger.info("Shutting down, closing %d session(s)", len(session_registry))
        await session_registry.close()

    app = FastAPI(
        title="StorySync API",
        description="Real-time collaborative editing of shared story sessions.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.registry = session_registry

    # CORS (also answers preflight requests)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(),
        )

    # =========================================================================
    # Sync Endpoint
    # =========================================================================

    @app.websocket("/ws")
    async def sync_endpoint(
        websocket: WebSocket,
        session: Optional[str] = Query(None, description="Session code to join"),
    ):
        """
        Join a session and relay frames until the client goes away.

        A missing or oversized session code refuses the connection
        before it is accepted.
        """
        name = (session or "").strip()
        if not name or len(name) > MAX_SESSION_NAME_LENGTH:
            logger.info("Rejected connection without a valid session code")
            await websocket.close(
                code=status.WS_1008_POLICY_VIOLATION,
                reason="Session code required",
            )
            return

        await websocket.accept()
        sync_session, conn = session_registry.join(name, websocket)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                frame = message.get("text")
                if frame is None:
                    try:
                        frame = (message.get("bytes") or b"").decode("utf-8")
                    except UnicodeDecodeError:
                        logger.warning("Discarding non UTF-8 binary frame from %r", conn)
                        continue
                sync_session.submit_frame(conn, frame)
        except WebSocketDisconnect:
            pass
        finally:
            session_registry.leave(conn, session=sync_session)

    @app.get("/ws", include_in_schema=False)
    async def sync_endpoint_http():
        """Plain HTTP requests to the sync endpoint must upgrade."""
        return PlainTextResponse(
            "Expected Upgrade: websocket",
            status_code=status.HTTP_426_UPGRADE_REQUIRED,
            headers={"Upgrade": "websocket"},
        )

    # =========================================================================
    # Page
    # =========================================================================

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    @app.get("/index.html", response_class=HTMLResponse, include_in_schema=False)
    async def index():
        """Collaboration page."""
        return HTMLResponse(INDEX_HTML)

    # =========================================================================
    # Session Endpoints
    # =========================================================================

    @app.get(
        "/api/v1/session-code",
        response_model=SessionCodeResponse,
        tags=["Sessions"],
        summary="Generate a session code",
    )
    async def new_session_code() -> SessionCodeResponse:
        """
        Generate a human-readable session code.

        The session itself only exists once a client joins with the code.
        """
        return SessionCodeResponse(code=generate_session_code())

    @app.get(
        "/api/v1/sessions",
        response_model=SessionListResponse,
        tags=["Sessions"],
        summary="List live sessions",
    )
    async def list_sessions() -> SessionListResponse:
        summaries = []
        for name in session_registry.names():
            live = session_registry.get(name)
            if live is None:
                continue
            summaries.append(SessionSummary(
                name=name,
                connections=len(live.connections),
                created_at=live.created_at,
            ))
        return SessionListResponse(sessions=summaries, total=len(summaries))

    @app.get(
        "/api/v1/sessions/{name}",
        response_model=SessionStateResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Get the current state of a session",
    )
    async def get_session_state(name: str):
        live = session_registry.get(name)
        if live is None:
            return make_error_response(
                ErrorCode.SESSION_NOT_FOUND,
                f"Session not found: {name}",
                status_code=404,
            )

        stats = live.stats()
        return SessionStateResponse(
            name=live.name,
            text=live.state.text,
            column=live.state.column,
            cards=[
                CardInfo(
                    card_id=c.card_id,
                    card_index=None if c.card_index is UNSET else c.card_index,
                    data=None if c.data is UNSET else c.data,
                )
                for c in live.state.cards
            ],
            connections=stats["connections"],
            frames_relayed=stats["frames_relayed"],
            frames_discarded=stats["frames_discarded"],
            created_at=live.created_at,
        )

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="storysync",
            version=__version__,
            sessions=len(session_registry),
        )

    return app


# For running directly: uvicorn storysync.api.app:app
app = create_app()
