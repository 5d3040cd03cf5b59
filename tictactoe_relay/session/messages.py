"""
Outbound Messages - What the relay sends to the client.

Every message on the wire is a JSON object:

    {"type": "<message type>", "payload": {...}, "id": <ack id, acks only>}

Messages are built fresh per emission from the values at hand; there is no
shared template object.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from ..engine.protocol import Outcome
from .state import Move


class MessageType(str, Enum):
    """Relay -> client message types."""
    CONNECTION = "connection"
    ACK = "ack"
    OPPONENT_MOVE = "opponent_move"
    REQUEST_MOVE = "request_move"
    RESULT = "result"
    ERROR = "error"
    OVER = "over"
    PONG = "pong"


class ErrorCode(str, Enum):
    """Structured error codes carried by error messages."""
    LAUNCH_FAILED = "LAUNCH_FAILED"
    INVALID_LAUNCH_SPEC = "INVALID_LAUNCH_SPEC"
    PROCESS_FAULT = "PROCESS_FAULT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ServerMessage(BaseModel):
    """A single relay -> client message."""
    type: MessageType
    payload: dict[str, Any] = Field(default_factory=dict)
    id: Optional[int] = None

    model_config = {"frozen": True}

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict; the id is only present on acks."""
        return self.model_dump(mode="json", exclude_none=True)


def connection_message() -> ServerMessage:
    return ServerMessage(type=MessageType.CONNECTION)


def ack_message(text: str, message_id: Optional[int] = None) -> ServerMessage:
    return ServerMessage(type=MessageType.ACK, payload={"message": text}, id=message_id)


def opponent_move_message(turn: int, move: Move) -> ServerMessage:
    """The engine played X. `turn` is the engine's own turn number."""
    return ServerMessage(
        type=MessageType.OPPONENT_MOVE,
        payload={"turn": turn, "row": move.row, "col": move.col},
    )


def request_move_message() -> ServerMessage:
    return ServerMessage(type=MessageType.REQUEST_MOVE)


def result_message(outcome: Outcome) -> ServerMessage:
    return ServerMessage(type=MessageType.RESULT, payload={"outcome": outcome.value})


def error_message(code: ErrorCode, text: str) -> ServerMessage:
    return ServerMessage(type=MessageType.ERROR, payload={"code": code.value, "message": text})


def over_message() -> ServerMessage:
    return ServerMessage(type=MessageType.OVER)


def pong_message() -> ServerMessage:
    return ServerMessage(type=MessageType.PONG)
