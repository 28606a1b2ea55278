"""Process and pipe ownership for one engine subprocess."""

from __future__ import annotations

import logging
import subprocess
import threading
from typing import Sequence

from uci_bridge.errors import SpawnError, WriteError

logger = logging.getLogger(__name__)


class EngineTransport:
    """Owns the engine process and its stdin/stdout/stderr pipes.

    The transport never restarts the engine. Detecting a dead engine is
    left to the reader loop, which sees ``read_chunk`` return ``b""``.
    """

    def __init__(self, process: subprocess.Popen) -> None:
        self._process = process
        self._write_lock = threading.Lock()
        self.degraded = False
        self._stderr_thread = threading.Thread(
            target=self._drain_stderr, name="uci-stderr", daemon=True
        )
        self._stderr_thread.start()

    @classmethod
    def spawn(cls, command: str | Sequence[str], cwd: str | None = None) -> EngineTransport:
        """Start the engine process.

        Args:
            command: Executable path, or a full argv list.
            cwd: Working directory for the engine.

        Returns:
            A transport wrapping the running process.

        Raises:
            SpawnError: If the executable cannot be started.
        """
        argv = [command] if isinstance(command, str) else list(command)
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                cwd=cwd,
            )
        except (OSError, ValueError) as exc:
            raise SpawnError(f"Could not start engine {argv[0]!r}: {exc}") from exc

        logger.info("Spawned engine %s (pid %d)", argv[0], process.pid)
        return cls(process)

    @property
    def is_alive(self) -> bool:
        return self._process.poll() is None

    def send(self, command: str) -> None:
        """Write one command line to the engine.

        Raises:
            WriteError: If the pipe is broken or already closed.
        """
        data = command if command.endswith("\n") else command + "\n"
        with self._write_lock:
            try:
                self._process.stdin.write(data.encode("utf-8"))
                self._process.stdin.flush()
            except (OSError, ValueError) as exc:
                self.degraded = True
                logger.error("Failed to write %r to engine: %s", command.strip(), exc)
                raise WriteError(f"Failed to write to engine: {exc}") from exc
        logger.debug("Wrote to engine: %s", data.rstrip("\n"))

    def read_chunk(self, size: int = 4096) -> bytes:
        """Block until the engine writes something, then return up to ``size`` bytes.

        Returns ``b""`` when the stream is closed or the read failed.
        """
        try:
            data = self._process.stdout.read(size)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read from engine pipe: %s", exc)
            return b""
        return data or b""

    def close(self, timeout: float = 2.0) -> None:
        """Ask the engine to quit, then kill it if it does not exit in time."""
        if self.is_alive:
            try:
                self.send("quit")
            except WriteError:
                pass
        try:
            self._process.stdin.close()
        except OSError:
            pass
        try:
            self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Engine did not quit within %.1fs, killing it", timeout)
            self._process.kill()
            self._process.wait()
        logger.info("Engine exited with code %s", self._process.returncode)

    def _drain_stderr(self) -> None:
        for raw in iter(self._process.stderr.readline, b""):
            logger.debug("Engine stderr: %s", raw.decode("utf-8", errors="replace").rstrip())
