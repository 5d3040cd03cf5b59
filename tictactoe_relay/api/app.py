"""
FastAPI Application - Real-time relay between browser clients and the engine.

Endpoints:
    WS     /ws                 Game channel (one session per connection)
    GET    /api/v1/sessions    List live sessions
    GET    /health             Health check

Game channel flow:
    1. Relay sends "connection" on accept
    2. Client sends "play" -> "ack", engine launched
    3. Relay sends "opponent_move" / "request_move" as the engine plays
    4. Client sends "move" -> "ack", move written to the engine
    5. Relay sends "result" when the engine reports one, "over" if the
       engine stops without one, "error" on faults

Client protocol violations (moving out of turn, taken cells) are
acknowledged and then ignored.
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging
import uuid

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .. import __version__
from ..config import RelaySettings
from ..session import ClientProtocolViolation, SessionRegistry
from ..session.messages import (
    ErrorCode,
    ServerMessage,
    ack_message,
    connection_message,
    error_message,
    pong_message,
)
from .schemas import (
    ClientEnvelope,
    ClientMessageType,
    HealthResponse,
    MovePayload,
    PlayPayload,
    SessionInfo,
    SessionListResponse,
    describe_validation_error,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


async def send_safely(send, message: ServerMessage, connection_id: str) -> bool:
    """Send a message, returning False instead of raising if the channel is gone."""
    try:
        await send(message)
    except Exception as e:
        logger.debug("%s: Could not send %s: %s", connection_id, message.type.value, e)
        return False
    return True


def create_app(
    settings: Optional[RelaySettings] = None,
    registry: Optional[SessionRegistry] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Optional settings (read from the environment if not provided)
        registry: Optional SessionRegistry (built from settings if not provided)

    Returns:
        FastAPI application instance
    """
    settings = settings or RelaySettings.from_env()
    session_registry = registry or settings.make_registry()

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, stopping %d engine(s)", len(session_registry))
        await session_registry.aclose()

    app = FastAPI(
        title="Tic Tac Toe Relay",
        description="Relays a real-time game channel to an external Tic Tac Toe engine.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.registry = session_registry
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Client message handling
    # =========================================================================

    async def handle_client_message(connection_id: str, raw: str, send) -> None:
        """Route one client message. Never raises for client mistakes."""
        try:
            envelope = ClientEnvelope.model_validate_json(raw)
        except ValidationError as e:
            await send(error_message(ErrorCode.VALIDATION_ERROR, describe_validation_error(e)))
            return

        if envelope.type is ClientMessageType.PING:
            await send(pong_message())
            return

        if envelope.type is ClientMessageType.PLAY:
            await send(ack_message("Acknowledged submit", envelope.id))
            try:
                payload = PlayPayload.model_validate(envelope.payload)
                spec = payload.to_launch_spec()
            except (ValidationError, ValueError) as e:
                text = describe_validation_error(e) if isinstance(e, ValidationError) else str(e)
                logger.info("%s: Rejected play: %s", connection_id, text)
                await send(error_message(ErrorCode.INVALID_LAUNCH_SPEC, text))
                return
            try:
                await session_registry.play(connection_id, spec, send)
            except ClientProtocolViolation as e:
                logger.info("%s: Rejected play: %s", connection_id, e)
            return

        if envelope.type is ClientMessageType.MOVE:
            await send(ack_message("Acknowledged move", envelope.id))
            try:
                payload = MovePayload.model_validate(envelope.payload)
                await session_registry.move(connection_id, payload.row, payload.col)
            except ValidationError as e:
                logger.info("%s: Rejected move: %s", connection_id, describe_validation_error(e))
            except ClientProtocolViolation as e:
                logger.info("%s: Rejected move: %s", connection_id, e)

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/ws")
    async def relay_socket(websocket: WebSocket):
        """
        Game channel.

        Messages from client:
        - play: Start a game {opponent_kind, opponent_option}
        - move: Submit a move {row, col}
        - ping: Keep-alive

        Messages from server:
        - connection, ack, opponent_move, request_move, result, error, over, pong
        """
        await websocket.accept()
        connection_id = uuid.uuid4().hex

        async def send(message: ServerMessage) -> None:
            await websocket.send_json(message.to_wire())

        logger.info("%s: Connected to client", connection_id)
        await send(connection_message())

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    await handle_client_message(connection_id, raw, send)
                except WebSocketDisconnect:
                    raise
                except Exception:
                    logger.exception("%s: Failed to handle client message", connection_id)
                    await send_safely(
                        send, error_message(ErrorCode.INTERNAL_ERROR, "Internal relay error"), connection_id,
                    )
        except WebSocketDisconnect:
            logger.info("%s: Client disconnected", connection_id)
        finally:
            session_registry.disconnect(connection_id)

    # =========================================================================
    # Sessions & Health
    # =========================================================================

    @app.get(
        "/api/v1/sessions",
        response_model=SessionListResponse,
        tags=["Sessions"],
        summary="List live sessions",
    )
    async def list_sessions() -> SessionListResponse:
        """List every live session and its phase."""
        sessions = []
        for connection_id in session_registry.list_active_sessions():
            session = session_registry.get_session(connection_id)
            if session is None:
                continue
            sessions.append(SessionInfo(
                connection_id=connection_id,
                phase=session.machine.phase.value,
                turn=session.machine.turn,
                engine_pid=session.handle.pid if session.handle else None,
                created_at=session.created_at,
            ))
        return SessionListResponse(sessions=sessions, count=len(sessions))

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            version=__version__,
            environment=settings.env,
            active_sessions=len(session_registry),
        )

    return app


# For running directly: uvicorn tictactoe_relay.api.app:app
app = create_app()
