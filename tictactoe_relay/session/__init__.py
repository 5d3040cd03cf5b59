"""
Session Module - Per-connection game sessions.

A session is one client's game against one engine process:
- Created when the client sends "play"
- Tracks phase, turn and board
- Relays engine events to the client and client moves to the engine
- Destroyed on disconnect, engine exit, or engine fault

Sessions are EPHEMERAL: in-memory only, nothing is persisted.
"""

from .state import (
    Board,
    Cell,
    ClientProtocolViolation,
    Move,
    Phase,
    SessionStateMachine,
)
from .messages import ErrorCode, MessageType, ServerMessage
from .dispatcher import EventDispatcher
from .manager import Session, SessionRegistry

__all__ = [
    "Board",
    "Cell",
    "ClientProtocolViolation",
    "Move",
    "Phase",
    "SessionStateMachine",
    "ErrorCode",
    "MessageType",
    "ServerMessage",
    "EventDispatcher",
    "Session",
    "SessionRegistry",
]
