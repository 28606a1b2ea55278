"""Two-sided countdown game clock.

The adapter starts and switches sides and reads the remaining budgets
for ``go wtime/btime``.
"""

from __future__ import annotations

import threading
import time

DEFAULT_BUDGET_MS = 5 * 60 * 1000


class GameClock:
    def __init__(self, budget_ms: int = DEFAULT_BUDGET_MS) -> None:
        self._lock = threading.Lock()
        self._remaining = [budget_ms, budget_ms]
        self._running: int | None = None
        self._started_at = 0.0

    def reset(self, budget_ms: int) -> None:
        with self._lock:
            self._remaining = [budget_ms, budget_ms]
            self._running = None

    def start_one(self, side: int) -> None:
        """Start ``side``'s clock (first move of the game)."""
        with self._lock:
            self._charge()
            self._running = side
            self._started_at = time.monotonic()

    def start_one_stop_other(self, side: int) -> None:
        """Stop the opponent's clock and start ``side``'s."""
        self.start_one(side)

    def remaining_ms(self, side: int) -> int:
        with self._lock:
            remaining = self._remaining[side]
            if self._running == side:
                remaining -= int((time.monotonic() - self._started_at) * 1000)
            return max(0, remaining)

    def _charge(self) -> None:
        if self._running is None:
            return
        elapsed = int((time.monotonic() - self._started_at) * 1000)
        self._remaining[self._running] = max(0, self._remaining[self._running] - elapsed)
