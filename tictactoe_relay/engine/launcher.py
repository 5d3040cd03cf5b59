"""
Engine Launcher - Starts and stops opponent engine processes.

The engine is an opaque executable. It always gets the human in the O seat
and the requested AI in the X seat:

    play -pO hp -pX <kind> <option>

Each ProcessHandle is owned by exactly one session. Stopping it sends
SIGINT first and escalates to SIGKILL if the engine does not exit within
the grace period.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Sequence
import asyncio
import logging
import signal

logger = logging.getLogger(__name__)

HUMAN_SEAT = ("-pO", "hp")
ENGINE_SEAT_FLAG = "-pX"

DEFAULT_ENGINE_PATH = "./TicTacToeGameAI/play"


class OpponentKind(str, Enum):
    """Search strategy the engine plays X with."""
    MINIMAX = "minimax"
    MONTECARLO = "montecarlo"


# Inclusive bounds for the option argument of each kind
OPTION_RANGES = {
    OpponentKind.MINIMAX: (1, 9),  # search depth
    OpponentKind.MONTECARLO: (1, 500),  # iterations
}


class LaunchError(RuntimeError):
    """The engine process could not be started."""


class ProcessFault(RuntimeError):
    """The engine misbehaved: stderr output, a dead pipe, or an early exit."""


@dataclass(frozen=True)
class LaunchSpec:
    """
    What to launch: the opponent kind and its tuning option.

    Raises ValueError on construction if the option is outside the range
    allowed for the kind.
    """
    kind: OpponentKind
    option: int

    def __post_init__(self):
        kind = OpponentKind(self.kind)
        object.__setattr__(self, "kind", kind)
        if isinstance(self.option, bool) or not isinstance(self.option, int):
            raise ValueError(f"Option must be an integer, got {self.option!r}")
        low, high = OPTION_RANGES[kind]
        if not low <= self.option <= high:
            raise ValueError(
                f"Option for {kind.value} must be between {low} and {high}, got {self.option}"
            )

    def engine_args(self) -> list[str]:
        """Command-line arguments selecting the seats."""
        return [*HUMAN_SEAT, ENGINE_SEAT_FLAG, self.kind.value, str(self.option)]


class ProcessHandle:
    """
    A running engine process.

    Exposes the raw byte streams plus a line writer and an idempotent
    terminate(). The handle does not read its own streams; the session
    supervisor does.
    """

    def __init__(self, process: asyncio.subprocess.Process):
        self._process = process
        self._stopping: asyncio.Future | None = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        return self._process.stderr

    @property
    def stdin(self) -> asyncio.StreamWriter:
        return self._process.stdin

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def is_running(self) -> bool:
        return self._process.returncode is None

    async def write(self, data: bytes):
        """
        Write to the engine's stdin and wait for the pipe to drain.

        Raises:
            ProcessFault: stdin is closed or the engine has gone away.
        """
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            raise ProcessFault("Engine stdin is closed")
        try:
            stdin.write(data)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ProcessFault(f"Engine stdin write failed: {e}") from e

    async def wait(self) -> int:
        """Wait for the engine to exit and return its exit code."""
        return await self._process.wait()

    async def terminate(self, grace_ms: int = 500) -> int | None:
        """
        Stop the engine: SIGINT, then SIGKILL after grace_ms.

        Safe to call repeatedly, concurrently and on an already-exited
        process. The first call's escalation runs to completion even if
        that caller is cancelled; later callers wait on it.
        """
        if self._process.returncode is not None:
            return self._process.returncode
        if self._stopping is None:
            self._stopping = asyncio.ensure_future(self._stop(grace_ms))
        return await asyncio.shield(self._stopping)

    async def _stop(self, grace_ms: int) -> int:
        try:
            self._process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            return await self._process.wait()

        try:
            return await asyncio.wait_for(self._process.wait(), timeout=grace_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning("Engine pid=%s ignored SIGINT, killing", self._process.pid)

        try:
            self._process.kill()
        except ProcessLookupError:
            pass
        return await self._process.wait()


class Launcher:
    """
    Spawns engine processes from LaunchSpecs.

    Args:
        engine_path: Path to the engine executable
        prefix: Optional command prefix, e.g. an interpreter for a scripted engine
    """

    def __init__(self, engine_path: str = DEFAULT_ENGINE_PATH, prefix: Sequence[str] = ()):
        self.engine_path = engine_path
        self.prefix = tuple(prefix)

    def command(self, spec: LaunchSpec) -> list[str]:
        """Full argv for a spec."""
        return [*self.prefix, self.engine_path, *spec.engine_args()]

    async def launch(self, spec: LaunchSpec) -> ProcessHandle:
        """
        Start an engine process.

        Raises:
            LaunchError: The executable could not be started.
        """
        argv = self.command(spec)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LaunchError(f"Could not start engine {argv[0]!r}: {e}") from e

        logger.info("Started engine pid=%s: %s", process.pid, " ".join(argv))
        return ProcessHandle(process)
