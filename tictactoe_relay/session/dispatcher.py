"""
Event Dispatcher - Translates between protocol events and client messages.

Engine side:
    OpponentMove  -> board updated, "opponent_move" sent
    RequestMove   -> client unblocked, "request_move" sent
    GameResult    -> session finished, "result" sent
    Unrecognized  -> logged only

Client side:
    play  -> engine launched
    move  -> validated, then written to the engine as "<row>,<col>\\n"

Each processed event causes at most one side effect: one outbound message
or one engine write.
"""

from __future__ import annotations
from typing import Awaitable, Callable, TYPE_CHECKING
import logging

from ..engine.launcher import Launcher, LaunchSpec, ProcessFault, ProcessHandle
from ..engine.protocol import (
    GameResult,
    OpponentMove,
    ProtocolEvent,
    RequestMove,
    Unrecognized,
)
from .messages import (
    ServerMessage,
    opponent_move_message,
    request_move_message,
    result_message,
)
from .state import Move

if TYPE_CHECKING:
    from .manager import Session

logger = logging.getLogger(__name__)

Emit = Callable[[ServerMessage], Awaitable[None]]


class EventDispatcher:
    """
    Per-session translator.

    Args:
        session: The session whose state machine and process are used
        launcher: Starts the engine on "play"
        emit: Coroutine delivering one message to the session's client
    """

    def __init__(self, session: Session, launcher: Launcher, emit: Emit):
        self.session = session
        self.launcher = launcher
        self.emit = emit

    async def start(self, spec: LaunchSpec) -> ProcessHandle:
        """
        Launch the engine for this session and enter AWAITING_OPPONENT_MOVE.

        Raises:
            LaunchError: The engine could not be started. The state machine
                stays IDLE.
        """
        handle = await self.launcher.launch(spec)
        self.session.handle = handle
        self.session.machine.start()
        logger.info(
            "%s: Playing against %s(%d), engine pid=%s",
            self.session.connection_id, spec.kind.value, spec.option, handle.pid,
        )
        return handle

    async def handle_event(self, event: ProtocolEvent):
        """Apply one decoded engine event and notify the client."""
        session = self.session
        machine = session.machine
        cid = session.connection_id

        if machine.is_finished:
            logger.debug("%s: Ignoring %s after game end", cid, event)
            return

        if isinstance(event, OpponentMove):
            move = machine.apply_opponent_move(event)
            if move is None:
                return
            logger.info("%s: X made a move (%d, %d)", cid, move.row, move.col)
            await self.emit(opponent_move_message(event.turn, move))

        elif isinstance(event, RequestMove):
            if not machine.apply_request_move():
                logger.debug("%s: Move request in phase %s", cid, machine.phase.value)
                return
            logger.info("%s: Requesting move", cid)
            await self.emit(request_move_message())

        elif isinstance(event, GameResult):
            machine.finish(event.outcome)
            logger.info("%s: Game result %s", cid, event.outcome.value)
            await self.emit(result_message(event.outcome))

        elif isinstance(event, Unrecognized):
            logger.info("%s: Unrecognized engine output: %r", cid, event.raw)

    async def handle_move(self, row: int, col: int) -> Move:
        """
        Validate a client move and forward it to the engine.

        Raises:
            ClientProtocolViolation: The move was rejected; nothing changed.
            ProcessFault: The engine's stdin is gone.
        """
        session = self.session
        if session.handle is None:
            raise ProcessFault("No engine process for this session")
        move = session.machine.apply_client_move(row, col)
        logger.info("%s: O made a move (%d, %d)", session.connection_id, row, col)
        await session.handle.write(move.to_engine_line())
        return move
