"""
Engine Module - Boundary to the external opponent engine.

The engine is a separate process speaking a line protocol on stdin/stdout.
This module owns:
- Launching and terminating the process (launcher)
- Decoding its stdout into typed events (protocol)

Nothing here knows about clients or sessions.
"""

from .launcher import (
    Launcher,
    LaunchSpec,
    LaunchError,
    OpponentKind,
    ProcessFault,
    ProcessHandle,
)
from .protocol import (
    ProtocolDecoder,
    ProtocolEvent,
    ProtocolParseError,
    OpponentMove,
    RequestMove,
    GameResult,
    Unrecognized,
    Outcome,
    parse_line,
)

__all__ = [
    # Launcher
    "Launcher",
    "LaunchSpec",
    "LaunchError",
    "OpponentKind",
    "ProcessFault",
    "ProcessHandle",
    # Protocol
    "ProtocolDecoder",
    "ProtocolEvent",
    "ProtocolParseError",
    "OpponentMove",
    "RequestMove",
    "GameResult",
    "Unrecognized",
    "Outcome",
    "parse_line",
]
