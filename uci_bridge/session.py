"""Engine session state shared between the reader thread and the foreground.

Every field is read and written under ``self.lock``. Waiters block on
the same condition, so flag changes wake them without polling.
"""

from __future__ import annotations

import threading

from uci_bridge.models import AnalysisInfo, EngineOption


class SessionState:
    def __init__(self) -> None:
        self.lock = threading.Condition()
        self.name = ""
        self.author = ""
        self.protocol_ready = False
        self.ready_for_command = False
        self.alive = True
        self.degraded = False
        self.lost_reason: str | None = None
        self.options: dict[str, EngineOption] = {}
        self.analysis = AnalysisInfo()
        # isready tickets handed out vs readyok lines received
        self._ready_requested = 0
        self._ready_received = 0

    # -- writers (reader thread) ------------------------------------------

    def mark_protocol_ready(self) -> None:
        with self.lock:
            self.protocol_ready = True
            self.lock.notify_all()

    def mark_ready(self) -> None:
        with self.lock:
            # an unsolicited readyok answers no ticket
            self._ready_received = min(self._ready_received + 1, self._ready_requested)
            self.ready_for_command = True
            self.lock.notify_all()

    def mark_lost(self, reason: str) -> None:
        with self.lock:
            self.alive = False
            self.lost_reason = reason
            self.lock.notify_all()

    def mark_degraded(self) -> None:
        with self.lock:
            self.degraded = True

    def set_identity(self, *, name: str | None = None, author: str | None = None) -> None:
        with self.lock:
            if name is not None:
                self.name = name
            if author is not None:
                self.author = author

    def register_option(self, option: EngineOption) -> None:
        with self.lock:
            self.options[option.name] = option

    # -- foreground --------------------------------------------------------

    def request_ready(self) -> int:
        """Take a ticket for the next ``isready``. Call before sending it."""
        with self.lock:
            self.ready_for_command = False
            self._ready_requested += 1
            return self._ready_requested

    def wait_ready(self, ticket: int, timeout: float) -> bool:
        """Wait until the ``readyok`` answering ``ticket`` has arrived.

        Returns False on timeout or if the engine is lost.
        """
        with self.lock:
            self.lock.wait_for(
                lambda: self._ready_received >= ticket or not self.alive,
                timeout=timeout,
            )
            return self.alive and self._ready_received >= ticket

    def wait_protocol_ready(self, timeout: float) -> bool:
        with self.lock:
            self.lock.wait_for(lambda: self.protocol_ready or not self.alive, timeout=timeout)
            return self.protocol_ready

    def has_option(self, name: str) -> bool:
        with self.lock:
            return name in self.options
