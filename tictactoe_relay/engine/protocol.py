"""
Engine Protocol - Decodes the opponent engine's stdout into typed events.

The engine writes one message per line. Lines are matched positionally,
in this order:

    "3\tX:1,2"        OpponentMove(turn=3, row=1, col=2)
                      (index 0 turn digit, index 2 'X', index 4 row, index 6 col)
    "\tO:"            RequestMove    (any line containing "O:")
    "Game Result:-1"  GameResult     (char after "Result:" is 1, 0 or '-')
    anything else     Unrecognized

The column layout is the engine binary's wire format and must not be
loosened. Stdout arrives in arbitrary chunks, so the decoder buffers
partial lines and only ever tokenizes complete ones.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Union
import logging

logger = logging.getLogger(__name__)

DIGITS = "0123456789"
BOARD_INDICES = "012"

MOVE_REQUEST_MARKER = "O:"
RESULT_MARKER = "Result:"


class Outcome(str, Enum):
    """Terminal classification of a finished game."""
    X_WINS = "xWon"
    DRAW = "draw"
    O_WINS = "oWon"


# Character following "Result:" -> outcome. "-" is the start of "-1".
RESULT_CODES = {
    "1": Outcome.X_WINS,
    "0": Outcome.DRAW,
    "-": Outcome.O_WINS,
}


class ProtocolParseError(ValueError):
    """A complete engine line matched none of the protocol forms."""

    def __init__(self, line: str):
        super().__init__(f"Unrecognized engine line: {line!r}")
        self.line = line


@dataclass(frozen=True)
class OpponentMove:
    """The engine played X at (row, col) on the given turn."""
    turn: int
    row: int
    col: int


@dataclass(frozen=True)
class RequestMove:
    """The engine is waiting for the human's O move."""


@dataclass(frozen=True)
class GameResult:
    """The engine reported the end of the game."""
    outcome: Outcome


@dataclass(frozen=True)
class Unrecognized:
    """A line that is not part of the protocol (board dumps, banners)."""
    raw: str


ProtocolEvent = Union[OpponentMove, RequestMove, GameResult, Unrecognized]


def _parse_opponent_move(line: str) -> OpponentMove | None:
    if len(line) < 7:
        return None
    if line[0] not in DIGITS or line[2] != "X":
        return None
    if line[4] not in BOARD_INDICES or line[6] not in BOARD_INDICES:
        return None
    return OpponentMove(turn=int(line[0]), row=int(line[4]), col=int(line[6]))


def _parse_result(line: str) -> GameResult | None:
    index = line.find(RESULT_MARKER)
    if index < 0:
        return None
    code = line[index + len(RESULT_MARKER):index + len(RESULT_MARKER) + 1]
    outcome = RESULT_CODES.get(code)
    if outcome is None:
        return None
    return GameResult(outcome=outcome)


def parse_line(line: str) -> ProtocolEvent:
    """
    Tokenize one complete engine line.

    Raises:
        ProtocolParseError: The line matches none of the protocol forms.
    """
    move = _parse_opponent_move(line)
    if move is not None:
        return move

    if MOVE_REQUEST_MARKER in line:
        return RequestMove()

    result = _parse_result(line)
    if result is not None:
        return result

    raise ProtocolParseError(line)


class ProtocolDecoder:
    """
    Stateful line reassembler for engine stdout.

    Usage:
        decoder = ProtocolDecoder()
        for event in decoder.feed(chunk):
            ...
        for event in decoder.flush():  # at end of stream
            ...

    Feeding a line in one call or split across many calls produces the
    same events.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Residual bytes of an unterminated line."""
        return bytes(self._buffer)

    def feed(self, data: bytes) -> list[ProtocolEvent]:
        """Append a chunk and return events for every line it completes."""
        self._buffer.extend(data)

        events: list[ProtocolEvent] = []
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            raw = bytes(self._buffer[:newline])
            del self._buffer[:newline + 1]
            event = self._decode_line(raw)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[ProtocolEvent]:
        """Decode whatever is left in the buffer as a final line."""
        if not self._buffer:
            return []
        raw = bytes(self._buffer)
        self._buffer.clear()
        event = self._decode_line(raw)
        return [event] if event is not None else []

    def _decode_line(self, raw: bytes) -> ProtocolEvent | None:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        line = raw.decode(self.encoding, errors="replace")
        if not line.strip():
            return None

        try:
            return parse_line(line)
        except ProtocolParseError as e:
            logger.debug("%s", e)
            return Unrecognized(raw=line)
