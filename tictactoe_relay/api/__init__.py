"""
API Module - Real-time interface for browser clients.

Exposes the relay over a WebSocket game channel plus a couple of
operational HTTP endpoints. All state is session-scoped and in-memory.
"""

from .schemas import (
    ClientEnvelope,
    ClientMessageType,
    PlayPayload,
    MovePayload,
    SessionInfo,
    SessionListResponse,
    HealthResponse,
)
from .app import create_app

__all__ = [
    # Client messages
    "ClientEnvelope",
    "ClientMessageType",
    "PlayPayload",
    "MovePayload",
    # Responses
    "SessionInfo",
    "SessionListResponse",
    "HealthResponse",
    "create_app",
]
