"""
Session Registry - Owns one engine process per connected client.

LIFECYCLE:
1. Client connects -> connection id assigned by the transport
2. Client sends "play" -> engine launched, session registered
3. During game:
   - Engine stdout is decoded and relayed as it arrives
   - Client moves are validated and written to engine stdin
4. Session ends when:
   - The engine exits -> terminal message sent, session removed at once
   - The engine writes to stderr -> "error" + "over", engine stopped, removed
   - The client disconnects -> engine stopped after a short grace period
     so in-flight writes flush, then removed

RULES:
- At most one live engine process per session
- Sessions never share state; one session's fault never reaches another
- In-memory only, nothing survives a restart

Everything runs on one asyncio loop. The registry dict is only mutated
between awaits, so it needs no lock.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from functools import partial
from typing import Awaitable, Callable
import asyncio
import logging
import time

from ..engine.launcher import Launcher, LaunchError, LaunchSpec, ProcessFault, ProcessHandle
from ..engine.protocol import ProtocolDecoder
from .dispatcher import EventDispatcher
from .messages import ErrorCode, ServerMessage, error_message, over_message
from .state import ClientProtocolViolation, Move, SessionStateMachine

logger = logging.getLogger(__name__)

Send = Callable[[ServerMessage], Awaitable[None]]

READ_CHUNK_SIZE = 4096
DEFAULT_DISCONNECT_GRACE_MS = 100
DEFAULT_KILL_GRACE_MS = 500


@dataclass
class Session:
    """
    One client's game against one engine process.

    The session exclusively owns its process handle and decoder buffer.
    Once `closed` is set nothing more is delivered to the client.
    """
    connection_id: str
    send: Send
    created_at: float = field(default_factory=time.time)

    machine: SessionStateMachine = field(default_factory=SessionStateMachine)
    decoder: ProtocolDecoder = field(default_factory=ProtocolDecoder)
    handle: ProcessHandle | None = None
    dispatcher: EventDispatcher | None = None

    # stdout / stderr reader tasks
    tasks: list[asyncio.Task] = field(default_factory=list)
    closed: bool = False


class SessionRegistry:
    """
    Maps connection ids to sessions and supervises their engines.

    Usage:
        registry = SessionRegistry(launcher)
        await registry.play(connection_id, spec, send)
        await registry.move(connection_id, row, col)
        registry.disconnect(connection_id)
        await registry.aclose()  # on shutdown
    """

    def __init__(
        self,
        launcher: Launcher | None = None,
        disconnect_grace_ms: int = DEFAULT_DISCONNECT_GRACE_MS,
        kill_grace_ms: int = DEFAULT_KILL_GRACE_MS,
    ):
        self.launcher = launcher or Launcher()
        self.disconnect_grace_ms = disconnect_grace_ms
        self.kill_grace_ms = kill_grace_ms
        self._sessions: dict[str, Session] = {}
        self._background: set[asyncio.Task] = set()

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_session(self, connection_id: str) -> Session | None:
        """Get the live session for a connection."""
        return self._sessions.get(connection_id)

    def list_active_sessions(self) -> list[str]:
        """Connection ids with a live session."""
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    # =========================================================================
    # Client requests
    # =========================================================================

    async def play(self, connection_id: str, spec: LaunchSpec, send: Send) -> Session | None:
        """
        Start a game for a connection.

        A connection whose previous game is finished gets a fresh session.
        Launch failures are reported to the client and leave nothing behind.

        Returns:
            The new session, or None if the engine could not be started.

        Raises:
            ClientProtocolViolation: A game is already running.
        """
        previous = self._sessions.get(connection_id)
        if previous is not None:
            if not previous.machine.is_finished:
                raise ClientProtocolViolation("A game is already in progress")
            await self._retire(previous)

        session = Session(connection_id=connection_id, send=send)
        session.dispatcher = EventDispatcher(session, self.launcher, partial(self._emit, session))

        try:
            await session.dispatcher.start(spec)
        except LaunchError as e:
            logger.warning("%s: Launch failed: %s", connection_id, e)
            await self._deliver(session, error_message(ErrorCode.LAUNCH_FAILED, str(e)))
            return None

        self._sessions[connection_id] = session
        session.tasks = [
            asyncio.create_task(self._pump_stdout(session)),
            asyncio.create_task(self._pump_stderr(session)),
        ]
        return session

    async def move(self, connection_id: str, row: int, col: int) -> Move:
        """
        Forward a client move to the connection's engine.

        Raises:
            ClientProtocolViolation: No game, wrong phase, bad or taken cell.
        """
        session = self._sessions.get(connection_id)
        if session is None or session.dispatcher is None:
            raise ClientProtocolViolation("No game in progress")
        try:
            return await session.dispatcher.handle_move(row, col)
        except ProcessFault as e:
            await self._fault(session, str(e))
            raise ClientProtocolViolation("Engine is no longer accepting moves") from e

    def disconnect(self, connection_id: str):
        """
        Client went away. Stops the engine after the disconnect grace period.
        """
        session = self._sessions.get(connection_id)
        if session is None or session.closed:
            return
        session.closed = True
        logger.info("%s: Client disconnected, stopping engine", connection_id)
        self._spawn(self._reap(session, self.disconnect_grace_ms))

    async def aclose(self):
        """Stop every engine and wait for all cleanup to finish."""
        for session in list(self._sessions.values()):
            session.closed = True
            self._spawn(self._reap(session, 0))
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # =========================================================================
    # Engine streams
    # =========================================================================

    async def _pump_stdout(self, session: Session):
        """Decode stdout until EOF, then handle the engine's exit."""
        handle = session.handle
        try:
            while True:
                chunk = await handle.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                logger.debug("%s: engine> %r", session.connection_id, chunk)
                for event in session.decoder.feed(chunk):
                    await session.dispatcher.handle_event(event)
            for event in session.decoder.flush():
                await session.dispatcher.handle_event(event)

            returncode = await handle.wait()
            await self._on_exit(session, returncode)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s: Relay error while reading engine output", session.connection_id)
            await self._fault(session, "Internal relay error")

    async def _pump_stderr(self, session: Session):
        """Any stderr output is a fatal engine fault."""
        chunk = await session.handle.stderr.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        text = chunk.decode("utf-8", errors="replace").strip()
        logger.warning("%s: Error:\n%s", session.connection_id, text)
        await self._fault(session, text or "Engine wrote to stderr")

    async def _on_exit(self, session: Session, returncode: int):
        if session.closed:
            self._remove(session)
            return
        session.closed = True
        logger.info("%s: Game concluded (exit code %s)", session.connection_id, returncode)

        if session.machine.outcome is None:
            if returncode != 0:
                await self._deliver(
                    session,
                    error_message(ErrorCode.PROCESS_FAULT, f"Engine exited with code {returncode}"),
                )
            await self._deliver(session, over_message())

        session.machine.finish()
        self._remove(session)

    async def _fault(self, session: Session, reason: str):
        """
        Stop the engine and drop the session after a fatal engine fault.

        The client hears "error" + "over" only if no result was relayed yet.
        """
        if session.closed:
            return
        session.closed = True
        session.machine.finish()
        self._remove(session)

        if session.machine.outcome is None:
            await self._deliver(session, error_message(ErrorCode.PROCESS_FAULT, reason))
            await self._deliver(session, over_message())
        else:
            logger.info("%s: Engine fault after result, not reported: %s", session.connection_id, reason)
        await session.handle.terminate(self.kill_grace_ms)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _emit(self, session: Session, message: ServerMessage):
        """Deliver unless the session is closed."""
        if session.closed:
            return
        await self._deliver(session, message)

    async def _deliver(self, session: Session, message: ServerMessage):
        try:
            await session.send(message)
        except Exception as e:
            # Client channel is gone; the transport will report the disconnect.
            logger.debug("%s: Could not send %s: %s", session.connection_id, message.type.value, e)

    async def _reap(self, session: Session, delay_ms: int):
        """Terminate after a delay, then stop reading and drop the session."""
        if delay_ms:
            await asyncio.sleep(delay_ms / 1000)
        if session.handle is not None:
            await session.handle.terminate(self.kill_grace_ms)
        for task in session.tasks:
            task.cancel()
        self._remove(session)

    async def _retire(self, session: Session):
        """Dispose of a finished session whose engine may still be running."""
        session.closed = True
        self._remove(session)
        await self._reap(session, 0)

    def _remove(self, session: Session):
        if self._sessions.get(session.connection_id) is session:
            del self._sessions[session.connection_id]

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
