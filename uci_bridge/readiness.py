"""The ``isready``/``readyok`` fence used before every mode-affecting command batch."""

from __future__ import annotations

import logging
from typing import Callable

from uci_bridge.session import SessionState

logger = logging.getLogger(__name__)

DEFAULT_READY_TIMEOUT = 3.0


class ReadinessSynchronizer:
    """Send ``isready`` and block until the engine has drained its queue.

    UCI answers ``isready`` requests in order, so each request takes a
    ticket and completes when that many ``readyok`` lines have arrived.
    """

    def __init__(
        self,
        session: SessionState,
        send: Callable[[str], None],
        timeout: float = DEFAULT_READY_TIMEOUT,
    ) -> None:
        self._session = session
        self._send = send
        self.timeout = timeout

    def wait(self, timeout: float | None = None) -> bool:
        """Run one handshake.

        Args:
            timeout: Seconds to wait; defaults to the configured timeout.

        Returns:
            True if the engine answered, False on timeout or lost engine.
            Never raises for a silent engine.
        """
        limit = self.timeout if timeout is None else timeout
        ticket = self._session.request_ready()
        self._send("isready")

        if self._session.wait_ready(ticket, limit):
            return True

        if not self._session.alive:
            logger.error("Engine lost while waiting for readyok: %s", self._session.lost_reason)
        else:
            logger.warning("No readyok within %.1fs, engine crashed?", limit)
        return False
