"""
Relay configuration, read from the environment.

    RELAY_ENV                  deployment label (default "development")
    RELAY_ENGINE_PATH          engine executable (default ./TicTacToeGameAI/play)
    RELAY_ENGINE_PREFIX        optional command prefix, space separated
    RELAY_DISCONNECT_GRACE_MS  delay before stopping an abandoned engine (100)
    RELAY_KILL_GRACE_MS        SIGINT -> SIGKILL window (500)
    RELAY_LOG_LEVEL            logging level (INFO)
    RELAY_PORT                 default listening port (3002)
    ALLOWED_ORIGINS            comma separated CORS origins ("*")
"""

from __future__ import annotations
from dataclasses import dataclass, field
import os
import shlex

from .engine.launcher import DEFAULT_ENGINE_PATH, Launcher
from .session.manager import (
    DEFAULT_DISCONNECT_GRACE_MS,
    DEFAULT_KILL_GRACE_MS,
    SessionRegistry,
)


@dataclass
class RelaySettings:
    """Runtime settings for the relay server."""
    env: str = "development"
    engine_path: str = DEFAULT_ENGINE_PATH
    engine_prefix: tuple[str, ...] = ()
    disconnect_grace_ms: int = DEFAULT_DISCONNECT_GRACE_MS
    kill_grace_ms: int = DEFAULT_KILL_GRACE_MS
    log_level: str = "INFO"
    port: int = 3002
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> RelaySettings:
        return cls(
            env=os.getenv("RELAY_ENV", "development"),
            engine_path=os.getenv("RELAY_ENGINE_PATH", DEFAULT_ENGINE_PATH),
            engine_prefix=tuple(shlex.split(os.getenv("RELAY_ENGINE_PREFIX", ""))),
            disconnect_grace_ms=int(os.getenv("RELAY_DISCONNECT_GRACE_MS", DEFAULT_DISCONNECT_GRACE_MS)),
            kill_grace_ms=int(os.getenv("RELAY_KILL_GRACE_MS", DEFAULT_KILL_GRACE_MS)),
            log_level=os.getenv("RELAY_LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("RELAY_PORT", 3002)),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
        )

    def make_launcher(self) -> Launcher:
        return Launcher(engine_path=self.engine_path, prefix=self.engine_prefix)

    def make_registry(self) -> SessionRegistry:
        return SessionRegistry(
            launcher=self.make_launcher(),
            disconnect_grace_ms=self.disconnect_grace_ms,
            kill_grace_ms=self.kill_grace_ms,
        )
