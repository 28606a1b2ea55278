"""Adapter configuration and logging setup.

Defaults live on AdapterConfig. ``from_env`` overlays UCI_BRIDGE_*
environment variables; the CLI overlays its own flags on top of that.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

# Engine search paths in priority order
_ENGINE_PATHS = [
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/bin/stockfish",
    "/usr/games/stockfish",
]

DEFAULT_ENGINE_OPTIONS = {
    "Threads": "1",
    "Hash": "512",
    "Ponder": "true",
    "Skill Level": "0",
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def find_engine() -> str:
    """Auto-detect the engine binary.

    Checks UCI_BRIDGE_ENGINE, then common Stockfish install locations,
    then PATH.

    Returns:
        Path to the engine executable.

    Raises:
        FileNotFoundError: If no engine can be found.
    """
    env_path = os.environ.get("UCI_BRIDGE_ENGINE")
    if env_path:
        return env_path

    for path in _ENGINE_PATHS:
        if Path(path).is_file():
            return path

    which = shutil.which("stockfish")
    if which is not None:
        return which

    raise FileNotFoundError(
        "Stockfish not found. Install it or set UCI_BRIDGE_ENGINE to an engine binary."
    )


@dataclass
class AdapterConfig:
    """Settings for one engine session."""

    engine_path: str | None = None
    engine_options: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_ENGINE_OPTIONS)
    )
    ready_timeout: float = 3.0
    handshake_timeout: float = 10.0
    read_chunk_size: int = 4096
    max_read_failures: int = 5
    read_backoff_initial: float = 0.05
    read_backoff_max: float = 1.0
    external_clock: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> AdapterConfig:
        """Build a config from defaults plus UCI_BRIDGE_* variables.

        Args:
            environ: Mapping to read instead of os.environ.

        Returns:
            A new AdapterConfig.
        """
        env = os.environ if environ is None else environ
        config = cls()

        if env.get("UCI_BRIDGE_ENGINE"):
            config.engine_path = env["UCI_BRIDGE_ENGINE"]
        if env.get("UCI_BRIDGE_READY_TIMEOUT"):
            try:
                config.ready_timeout = float(env["UCI_BRIDGE_READY_TIMEOUT"])
            except ValueError as exc:
                raise ValueError(
                    f"Invalid UCI_BRIDGE_READY_TIMEOUT: {env['UCI_BRIDGE_READY_TIMEOUT']!r}"
                ) from exc
        if env.get("UCI_BRIDGE_EXTERNAL_CLOCK"):
            config.external_clock = env["UCI_BRIDGE_EXTERNAL_CLOCK"].lower() in _TRUE_VALUES
        if env.get("UCI_BRIDGE_LOG_LEVEL"):
            config.log_level = env["UCI_BRIDGE_LOG_LEVEL"].upper()

        return config

    def resolve_engine_path(self) -> str:
        return self.engine_path or find_engine()


def configure_logging(level: str | int = "INFO") -> None:
    """Send log records to stderr with the project format."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
