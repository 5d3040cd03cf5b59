"""
Pytest fixtures for relay tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

from ..engine.launcher import Launcher, LaunchSpec, OpponentKind
from ..session.manager import SessionRegistry
from ..session.messages import MessageType, ServerMessage

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"


class MessageRecorder:
    """
    Collects relay -> client messages for one fake connection.

    Usable directly as the registry's `send` callable.
    """

    def __init__(self):
        self.messages: list[ServerMessage] = []
        self._changed = asyncio.Event()

    async def __call__(self, message: ServerMessage) -> None:
        self.messages.append(message)
        self._changed.set()

    @property
    def types(self) -> list[MessageType]:
        return [m.type for m in self.messages]

    def of_type(self, message_type: MessageType) -> list[ServerMessage]:
        return [m for m in self.messages if m.type == message_type]

    async def wait_for(self, message_type: MessageType, count: int = 1, timeout: float = 5.0):
        """Wait until `count` messages of the given type have arrived."""
        async def _wait():
            while len(self.of_type(message_type)) < count:
                self._changed.clear()
                await self._changed.wait()
        await asyncio.wait_for(_wait(), timeout)
        return self.of_type(message_type)[count - 1]


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01):
    """Poll until predicate() is true."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(interval)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def fake_launcher() -> Launcher:
    """Launcher that runs the scripted fake engine."""
    return Launcher(engine_path=str(FAKE_ENGINE), prefix=(sys.executable,))


@pytest.fixture
def registry(fake_launcher: Launcher) -> SessionRegistry:
    """Registry with short grace periods."""
    return SessionRegistry(launcher=fake_launcher, disconnect_grace_ms=20, kill_grace_ms=300)


@pytest.fixture
def minimax_spec() -> LaunchSpec:
    return LaunchSpec(kind=OpponentKind.MINIMAX, option=3)


@pytest.fixture
def engine_mode(monkeypatch):
    """Select the fake engine's behaviour for processes started in a test."""
    def _set(mode: str):
        monkeypatch.setenv("FAKE_ENGINE_MODE", mode)
    _set("normal")
    return _set
