"""Tests for the subprocess transport, using tests/fake_engine.py as the engine."""

from __future__ import annotations

import pytest

from conftest import fast_config
from uci_bridge.adapter import UciAdapter
from uci_bridge.config import find_engine
from uci_bridge.errors import SpawnError, WriteError
from uci_bridge.models import Mode, MoveAcceptedEvent
from uci_bridge.tokenizer import LineTokenizer, TokenKind
from uci_bridge.transport import EngineTransport


def _read_until(transport: EngineTransport, kind: TokenKind, limit: int = 50) -> list:
    tokenizer = LineTokenizer()
    tokens = []
    for _ in range(limit):
        chunk = transport.read_chunk()
        assert chunk, "engine closed its output"
        tokens.extend(tokenizer.feed(chunk))
        if any(t.kind is kind for t in tokens):
            return tokens
    raise AssertionError(f"no {kind} after {limit} reads")


def test_spawn_missing_executable():
    with pytest.raises(SpawnError, match="Could not start engine"):
        EngineTransport.spawn("/nonexistent/path/to/engine")


def test_handshake_over_pipes(fake_engine_cmd):
    transport = EngineTransport.spawn(fake_engine_cmd)
    try:
        assert transport.is_alive
        transport.send("uci")
        tokens = _read_until(transport, TokenKind.OK)
        names = [t.payload[0] for t in tokens if t.kind is TokenKind.ID_NAME]
        assert names == ["FakeFish 1.0"]

        transport.send("isready\n")
        _read_until(transport, TokenKind.READYOK)
    finally:
        transport.close()
    assert not transport.is_alive


def test_read_after_exit_returns_empty(fake_engine_cmd):
    transport = EngineTransport.spawn(fake_engine_cmd)
    transport.close()
    assert transport.read_chunk() == b""


def test_write_after_exit_raises(fake_engine_cmd):
    transport = EngineTransport.spawn(fake_engine_cmd)
    transport.close()
    with pytest.raises(WriteError):
        transport.send("isready")
    assert transport.degraded


def test_adapter_plays_against_subprocess(fake_engine_cmd):
    config = fast_config(engine_path=fake_engine_cmd[0], ready_timeout=3.0, handshake_timeout=5.0)
    adapter = UciAdapter(config, transport_factory=lambda _path: EngineTransport.spawn(fake_engine_cmd))
    adapter.start()
    try:
        assert adapter.session.name == "FakeFish 1.0"
        assert adapter.start_game(Mode.ENGINE_WHITE, time_control_ms=10_000)

        engine_moves = []
        for _ in range(20):
            for event in adapter.drain_events(timeout=0.25):
                if isinstance(event, MoveAcceptedEvent):
                    engine_moves.append(event.move)
            if engine_moves:
                break

        # alphabetically first legal move from the start position
        assert engine_moves == ["a2a3"]
        assert adapter.gameplay.history == "a2a3"
        assert adapter.submit_user_move("e7e5")
    finally:
        adapter.shutdown()


@pytest.mark.e2e
def test_real_engine_handshake():
    adapter = UciAdapter(fast_config(engine_path=find_engine(), ready_timeout=3.0, handshake_timeout=10.0))
    with adapter:
        assert adapter.session.name
        assert adapter.start_game(Mode.ANALYSIS)
        assert adapter.snapshot().analysing
