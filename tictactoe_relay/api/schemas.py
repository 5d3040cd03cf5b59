"""
Pydantic Schemas for API - Client messages and HTTP responses.

WebSocket messages from the client are JSON envelopes:

    {"type": "play", "payload": {"opponent_kind": "minimax", "opponent_option": 3}, "id": 1}
    {"type": "move", "payload": {"row": 1, "col": 2}, "id": 2}
    {"type": "ping"}

`play` and `move` are acknowledged with an "ack" carrying the same id.
The ack confirms receipt only, not validity.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, Field, ValidationError, model_validator

from ..engine.launcher import OPTION_RANGES, LaunchSpec, OpponentKind


# =============================================================================
# Enums
# =============================================================================

class ClientMessageType(str, Enum):
    """Client -> relay message types."""
    PLAY = "play"
    MOVE = "move"
    PING = "ping"


# =============================================================================
# WebSocket Messages
# =============================================================================

class ClientEnvelope(BaseModel):
    """Outer shape of every client message."""
    type: ClientMessageType
    payload: dict[str, Any] = Field(default_factory=dict)
    id: Optional[int] = None


class PlayPayload(BaseModel):
    """
    Start a game against the given opponent.

    Accepts snake_case, camelCase, and the legacy {type, option} field names.
    """
    opponent_kind: OpponentKind = Field(
        validation_alias=AliasChoices("opponent_kind", "opponentKind", "type"),
    )
    opponent_option: int = Field(
        validation_alias=AliasChoices("opponent_option", "opponentOption", "option"),
    )

    @model_validator(mode="after")
    def check_option_range(self):
        low, high = OPTION_RANGES[self.opponent_kind]
        if not low <= self.opponent_option <= high:
            raise ValueError(
                f"opponent_option for {self.opponent_kind.value} must be between {low} and {high}"
            )
        return self

    def to_launch_spec(self) -> LaunchSpec:
        return LaunchSpec(kind=self.opponent_kind, option=self.opponent_option)


class MovePayload(BaseModel):
    """
    Submit the client's O move.

    Coordinates are not range-checked here; the session rejects bad moves
    without an error reply.
    """
    row: int
    col: int


# =============================================================================
# HTTP Responses
# =============================================================================

class SessionInfo(BaseModel):
    """Summary of one live session."""
    connection_id: str
    phase: str
    turn: int
    engine_pid: Optional[int] = None
    created_at: float


class SessionListResponse(BaseModel):
    """List of live sessions."""
    sessions: list[SessionInfo]
    count: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    service: str = "tictactoe-relay"
    version: str
    environment: str
    active_sessions: int = 0


def describe_validation_error(error: ValidationError) -> str:
    """One-line summary of a pydantic validation error."""
    parts = []
    for detail in error.errors():
        location = ".".join(str(p) for p in detail.get("loc", ())) or "message"
        parts.append(f"{location}: {detail.get('msg', 'invalid')}")
    return "; ".join(parts)
