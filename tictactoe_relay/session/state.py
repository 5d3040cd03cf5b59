"""
Session State Machine - Turn-taking rules for one relayed game.

Phases:
    IDLE ──play──> AWAITING_OPPONENT_MOVE ⇄ AWAITING_CLIENT_MOVE ──> FINISHED

- The engine plays X, the client plays O.
- An engine move is only applied while AWAITING_OPPONENT_MOVE.
- A client move is only accepted while AWAITING_CLIENT_MOVE.
- Cells are write-once: EMPTY -> X or EMPTY -> O, never back.
- The turn counter goes up by exactly one per accepted move.

The machine never touches the process or the client. It only answers
"is this allowed" and records the result.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import logging

from ..engine.protocol import OpponentMove, Outcome

logger = logging.getLogger(__name__)

BOARD_SIZE = 3


class Phase(Enum):
    """Where the session is in the turn-taking protocol."""
    IDLE = "idle"
    AWAITING_OPPONENT_MOVE = "awaiting_opponent_move"
    AWAITING_CLIENT_MOVE = "awaiting_client_move"
    FINISHED = "finished"


class Cell(Enum):
    """Occupancy of one board square."""
    EMPTY = " "
    X = "X"
    O = "O"


class ClientProtocolViolation(ValueError):
    """A client request that the current session state does not allow."""


@dataclass(frozen=True)
class Move:
    """One accepted move. Built fresh per move, never reused."""
    turn: int
    player: Cell
    row: int
    col: int

    def __post_init__(self):
        if self.turn < 0:
            raise ValueError(f"Turn must be non-negative, got {self.turn}")
        if self.player is Cell.EMPTY:
            raise ValueError("A move must be made by X or O")
        if not in_bounds(self.row, self.col):
            raise ValueError(f"Move ({self.row}, {self.col}) is off the board")

    def to_engine_line(self) -> bytes:
        """Engine stdin encoding: "<row>,<col>\\n"."""
        return f"{self.row},{self.col}\n".encode("ascii")


def in_bounds(row: int, col: int) -> bool:
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


class Board:
    """3x3 grid of write-once cells."""

    def __init__(self):
        self._cells = [[Cell.EMPTY] * BOARD_SIZE for _ in range(BOARD_SIZE)]

    def get(self, row: int, col: int) -> Cell:
        return self._cells[row][col]

    def is_empty(self, row: int, col: int) -> bool:
        return self._cells[row][col] is Cell.EMPTY

    def place(self, move: Move):
        if not self.is_empty(move.row, move.col):
            raise ValueError(f"Cell ({move.row}, {move.col}) is already {self.get(move.row, move.col).value}")
        self._cells[move.row][move.col] = move.player

    def snapshot(self) -> tuple[tuple[Cell, ...], ...]:
        return tuple(tuple(row) for row in self._cells)


class SessionStateMachine:
    """
    Phase, turn counter and board for one session.

    Usage:
        machine = SessionStateMachine()
        machine.start()
        machine.apply_opponent_move(event)   # -> Move or None
        machine.apply_request_move()         # -> bool
        machine.apply_client_move(1, 1)      # -> Move, or raises
        machine.finish(outcome)
    """

    def __init__(self):
        self.phase = Phase.IDLE
        self.turn = 0
        self.board = Board()
        self.history: list[Move] = []
        self.outcome: Outcome | None = None

    @property
    def is_finished(self) -> bool:
        return self.phase is Phase.FINISHED

    def start(self):
        """IDLE -> AWAITING_OPPONENT_MOVE."""
        if self.phase is not Phase.IDLE:
            raise ClientProtocolViolation(f"Game already started (phase={self.phase.value})")
        self.phase = Phase.AWAITING_OPPONENT_MOVE

    def apply_opponent_move(self, event: OpponentMove) -> Move | None:
        """
        Record the engine's X move.

        Returns the accepted Move, or None if the engine reported a move the
        session cannot take (wrong phase, occupied cell). Rejected engine
        moves leave the state untouched.
        """
        if self.phase is not Phase.AWAITING_OPPONENT_MOVE:
            logger.warning("Dropping engine move %s in phase %s", event, self.phase.value)
            return None
        if not self.board.is_empty(event.row, event.col):
            logger.warning("Dropping engine move %s onto occupied cell", event)
            return None

        move = Move(turn=self.turn + 1, player=Cell.X, row=event.row, col=event.col)
        self._accept(move)
        self.phase = Phase.AWAITING_CLIENT_MOVE
        return move

    def apply_request_move(self) -> bool:
        """
        Engine asked for the O move. Unblocks client input, board unchanged.

        The engine asks right after reporting its own move, so a request
        while already AWAITING_CLIENT_MOVE is accepted without a transition.
        Returns False only when no game is in progress.
        """
        if self.phase is Phase.AWAITING_OPPONENT_MOVE:
            self.phase = Phase.AWAITING_CLIENT_MOVE
        return self.phase is Phase.AWAITING_CLIENT_MOVE

    def apply_client_move(self, row: int, col: int) -> Move:
        """
        Validate and record the client's O move.

        Raises:
            ClientProtocolViolation: Out of phase, off the board, or occupied.
        """
        if self.phase is not Phase.AWAITING_CLIENT_MOVE:
            raise ClientProtocolViolation(f"Not accepting moves (phase={self.phase.value})")
        if not in_bounds(row, col):
            raise ClientProtocolViolation(f"Move ({row}, {col}) is off the board")
        if not self.board.is_empty(row, col):
            raise ClientProtocolViolation(f"Cell ({row}, {col}) is already taken")

        move = Move(turn=self.turn + 1, player=Cell.O, row=row, col=col)
        self._accept(move)
        self.phase = Phase.AWAITING_OPPONENT_MOVE
        return move

    def finish(self, outcome: Outcome | None = None):
        """Any phase -> FINISHED. The first recorded outcome wins."""
        if self.outcome is None:
            self.outcome = outcome
        self.phase = Phase.FINISHED

    def _accept(self, move: Move):
        self.board.place(move)
        self.turn = move.turn
        self.history.append(move)
