"""Shared test fixtures with dual-mode support (scripted fake vs real engine).

Usage:
    pytest tests/                  # Fast, in-memory scripted engine
    pytest tests/ --e2e            # Also run tests against a real Stockfish

Fixtures:
    fake_transport  - In-memory transport that answers like a UCI engine.
    adapter         - Started UciAdapter wired to fake_transport.
    fake_engine_cmd - argv that runs tests/fake_engine.py as a subprocess.
"""

from __future__ import annotations

import queue
import sys
import time
from pathlib import Path
from typing import Callable

import pytest

from uci_bridge.adapter import UciAdapter
from uci_bridge.config import AdapterConfig
from uci_bridge.errors import WriteError

_TESTS_DIR = Path(__file__).resolve().parent

FAKE_ENGINE_ID = [
    "id name FakeFish 1.0",
    "id author uci-bridge tests",
    "option name Threads type spin default 1 min 1 max 512",
    "option name Hash type spin default 16 min 1 max 33554432",
    "option name Ponder type check default false",
    "uciok",
]


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for real engine tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run with a real Stockfish engine.",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires real Stockfish)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--e2e"):
        return
    skip = pytest.mark.skip(reason="needs --e2e and a real engine")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip)


# ---------------------------------------------------------------------------
# Scripted in-memory engine
# ---------------------------------------------------------------------------


def uci_responder(command: str) -> list[str]:
    """Answer the handshake commands the way a real engine would."""
    if command == "uci":
        return list(FAKE_ENGINE_ID)
    if command == "isready":
        return ["readyok"]
    return []


class FakeTransport:
    """Stands in for EngineTransport.

    Records every command sent and feeds scripted output to the reader
    thread. ``emit`` pushes raw engine output, ``hang_up`` simulates a
    dead pipe.
    """

    def __init__(self, responder: Callable[[str], list[str]] = uci_responder) -> None:
        self.responder = responder
        self.sent: list[str] = []
        self.degraded = False
        self.fail_writes = False
        self._out: queue.Queue[bytes] = queue.Queue()
        self._eof = False

    @property
    def is_alive(self) -> bool:
        return not self._eof

    def send(self, command: str) -> None:
        if self.fail_writes:
            self.degraded = True
            raise WriteError("Broken pipe")
        command = command.rstrip("\n")
        self.sent.append(command)
        for line in self.responder(command):
            self.emit(line + "\n")

    def emit(self, data: str | bytes) -> None:
        self._out.put(data.encode("utf-8") if isinstance(data, str) else data)

    def read_chunk(self, size: int = 4096) -> bytes:
        if self._eof:
            return b""
        return self._out.get()

    def hang_up(self) -> None:
        self._eof = True
        self._out.put(b"")

    def close(self, timeout: float = 2.0) -> None:
        self.hang_up()

    def commands(self, prefix: str) -> list[str]:
        return [c for c in self.sent if c.startswith(prefix)]


def fast_config(**overrides) -> AdapterConfig:
    """Config with short timeouts and backoff for tests."""
    config = AdapterConfig(
        engine_path="fakefish",
        ready_timeout=1.0,
        handshake_timeout=1.0,
        read_backoff_initial=0.001,
        read_backoff_max=0.01,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll ``predicate`` until true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def fake_transport():
    return FakeTransport()


@pytest.fixture()
def adapter(fake_transport):
    """A started adapter talking to the scripted fake engine."""
    instance = UciAdapter(fast_config(), transport_factory=lambda _path: fake_transport)
    instance.start()
    yield instance
    instance.shutdown(timeout=0.5)


@pytest.fixture()
def fake_engine_cmd() -> list[str]:
    return [sys.executable, str(_TESTS_DIR / "fake_engine.py")]
