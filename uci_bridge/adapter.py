"""UCI engine adapter: one engine process, one game session.

Wires transport, tokenizer, dispatcher, readiness fence and gameplay
state together, runs the background reader, and exposes the
foreground API a game UI drives:

    adapter = UciAdapter(AdapterConfig(engine_path="/usr/bin/stockfish"))
    adapter.start()
    adapter.start_game(Mode.ENGINE_BLACK, time_control_ms=300_000)
    adapter.submit_user_move("e2e4")
    for event in adapter.drain_events(): ...
    adapter.shutdown()
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import asdict
from typing import Callable

from uci_bridge.clock import GameClock
from uci_bridge.config import AdapterConfig
from uci_bridge.dispatcher import Dispatcher
from uci_bridge.errors import (
    AdapterError,
    EngineLostError,
    GameNotStartedError,
    HandshakeError,
    WriteError,
)
from uci_bridge.gameplay import GameplayStateMachine, decode_promotion
from uci_bridge.models import (
    AnalysisInfo,
    EngineLostEvent,
    Mode,
    MoveAcceptedEvent,
    SessionSnapshot,
)
from uci_bridge.readiness import ReadinessSynchronizer
from uci_bridge.session import SessionState
from uci_bridge.tokenizer import LineTokenizer
from uci_bridge.transport import EngineTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], EngineTransport]


class UciAdapter:
    def __init__(
        self,
        config: AdapterConfig | None = None,
        clock: GameClock | None = None,
        transport_factory: TransportFactory = EngineTransport.spawn,
    ) -> None:
        self.config = config or AdapterConfig()
        self._transport_factory = transport_factory
        self._transport: EngineTransport | None = None
        self._reader: threading.Thread | None = None
        self._running = threading.Event()

        self.events: queue.Queue = queue.Queue()
        self.session = SessionState()
        self.gameplay = GameplayStateMachine(clock, external_clock=self.config.external_clock)
        self._tokenizer = LineTokenizer()
        self._dispatcher = Dispatcher(self.session, self.gameplay, self.send, self.events)
        self.readiness = ReadinessSynchronizer(
            self.session, self.send, timeout=self.config.ready_timeout
        )

    def __enter__(self) -> UciAdapter:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the engine, run the ``uci`` handshake and apply options.

        Raises:
            SpawnError: If the engine cannot be started.
            HandshakeError: If ``uciok`` does not arrive in time.
        """
        if self._transport is not None:
            raise AdapterError("Engine already started")

        self._transport = self._transport_factory(self.config.resolve_engine_path())
        self._running.set()
        self._reader = threading.Thread(target=self._read_loop, name="uci-reader", daemon=True)
        self._reader.start()

        self.send("uci")
        if not self.session.wait_protocol_ready(self.config.handshake_timeout):
            self.shutdown()
            raise HandshakeError(
                f"No uciok from engine within {self.config.handshake_timeout:.1f}s"
            )
        logger.info("UCI OK")

        for name, value in self.config.engine_options.items():
            if not self.session.has_option(name):
                logger.warning("Engine does not support option %r, skipping", name)
                continue
            self.send(f"setoption name {name} value {value}")
        self.readiness.wait()

    def shutdown(self, timeout: float = 2.0) -> None:
        """Stop the reader and terminate the engine."""
        self._running.clear()
        if self._transport is not None:
            self._transport.close(timeout=timeout)
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=timeout)
            if self._reader.is_alive():
                logger.warning("Reader thread still blocked after %.1fs", timeout)
        self._reader = None
        self._transport = None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def send(self, command: str) -> None:
        """Write a command. A broken pipe is logged and degrades the session."""
        if self._transport is None:
            raise AdapterError("Engine not started")
        try:
            self._transport.send(command)
        except WriteError:
            self.session.mark_degraded()

    def start_game(self, mode: Mode | str, time_control_ms: int | None = None) -> bool:
        """Reset for a new game and, if the engine moves first, kick it off.

        Args:
            mode: Mode or its string value.
            time_control_ms: Per-side clock budget; keeps the previous one if None.

        Returns:
            False if a readiness handshake timed out, True otherwise.
        """
        mode = Mode(mode)
        self._ensure_alive()
        logger.info("Start UCI game, mode %s", mode.value)

        if self.gameplay.stop_search():
            self.send("stop")
        ready = self.readiness.wait()

        self.gameplay.reset(mode, time_control_ms)
        self._clear_analysis()

        self.send("ucinewgame")
        ready = self.readiness.wait() and ready

        if mode is Mode.ENGINE_WHITE:
            self.send("position startpos")
            self._go(self.gameplay.go_command())
        elif mode is Mode.ANALYSIS:
            self.send("position startpos")
            self.gameplay.set_analysing(True)
            self._go("go infinite")
        return ready

    def submit_user_move(self, move: str) -> bool:
        """Play the user's move and send the engine the new position.

        Legality is the caller's concern; only the notation is checked.

        Returns:
            False if the readiness handshake timed out, True otherwise.

        Raises:
            GameNotStartedError: If no game is in progress.
            InvalidMoveError: If ``move`` is not coordinate notation.
            EngineLostError: If the engine is gone.
        """
        self._ensure_alive()
        if self.gameplay.mode is None:
            raise GameNotStartedError("Start a game before submitting moves")

        ply = self.gameplay.accept_move(move)
        accepted = self.gameplay.moves[-1]
        promotion = decode_promotion(accepted)
        logger.debug("User move to UCI: %s", accepted)
        self.events.put(
            MoveAcceptedEvent(move=accepted, source="user", ply=ply, promotion=promotion)
        )

        if self.gameplay.stop_search():
            self.send("stop")
        ready = self.readiness.wait()

        self.send(self.gameplay.position_command())
        if self.gameplay.mode is Mode.ANALYSIS:
            self.gameplay.set_analysing(True)
            self._go("go infinite")
        else:
            self._go(self.gameplay.go_command())
        return ready

    # ------------------------------------------------------------------
    # UI side
    # ------------------------------------------------------------------

    def drain_events(self, timeout: float | None = None) -> list:
        """Return all queued events, waiting up to ``timeout`` for the first one."""
        drained = []
        try:
            if timeout:
                drained.append(self.events.get(timeout=timeout))
            while True:
                drained.append(self.events.get_nowait())
        except queue.Empty:
            pass
        return drained

    def snapshot(self) -> SessionSnapshot:
        with self.session.lock:
            analysis = self.session.analysis
            snap = SessionSnapshot(
                engine_name=self.session.name,
                engine_author=self.session.author,
                mode=None,
                ply=0,
                to_play=0,
                protocol_ready=self.session.protocol_ready,
                ready_for_command=self.session.ready_for_command,
                alive=self.session.alive,
                degraded=self.session.degraded,
                lost_reason=self.session.lost_reason,
                score=analysis.score.text if analysis.score is not None else None,
                best_line=list(analysis.best_line),
                nodes_per_second=analysis.nps_text,
                depth=analysis.depth,
                options=sorted(self.session.options),
            )
        for key, value in self.gameplay.snapshot().items():
            setattr(snap, key, value)
        return snap

    def snapshot_dict(self) -> dict:
        return asdict(self.snapshot())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_alive(self) -> None:
        if self._transport is None:
            raise AdapterError("Engine not started")
        if not self.session.alive:
            raise EngineLostError(f"Engine lost: {self.session.lost_reason}")

    def _go(self, command: str) -> None:
        # marked first so a fast bestmove always finds the search recorded
        self.gameplay.start_search()
        self.send(command)

    def _clear_analysis(self) -> None:
        with self.session.lock:
            self.session.analysis = AnalysisInfo()

    def _read_loop(self) -> None:
        logger.info("Starting UCI reader")
        failures = 0
        delay = self.config.read_backoff_initial
        transport = self._transport

        while self._running.is_set():
            chunk = transport.read_chunk(self.config.read_chunk_size)
            if not chunk:
                if not self._running.is_set():
                    break
                failures += 1
                if failures >= self.config.max_read_failures:
                    self._engine_lost(
                        f"engine output closed after {failures} failed reads"
                    )
                    break
                logger.warning(
                    "Failed to read from engine (%d/%d), retrying in %.2fs",
                    failures, self.config.max_read_failures, delay,
                )
                time.sleep(delay)
                delay = min(delay * 2, self.config.read_backoff_max)
                continue

            failures = 0
            delay = self.config.read_backoff_initial
            for token in self._tokenizer.feed(chunk):
                logger.debug("Read from engine: %s", token.line)
                try:
                    self._dispatcher.dispatch(token)
                except AdapterError as exc:
                    # a follow-up command after shutdown has nowhere to go
                    logger.warning("Dropped engine line %r: %s", token.line, exc)

        logger.info("Closing UCI reader")

    def _engine_lost(self, reason: str) -> None:
        logger.error("Engine lost: %s", reason)
        self.session.mark_lost(reason)
        self.events.put(EngineLostEvent(reason=reason))
