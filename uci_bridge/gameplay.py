"""Game state machine: mode, move history, turn, pondering and analysis.

Idle (mode None) -> ENGINE_WHITE | ENGINE_BLACK | ANALYSIS at new-game
time. Moves from either side go through ``accept_move``; pondering is
a sub-state of the two playing modes.
"""

from __future__ import annotations

import logging
import threading

import chess

from uci_bridge.clock import GameClock
from uci_bridge.errors import InvalidMoveError
from uci_bridge.models import BLACK, WHITE, Mode

logger = logging.getLogger(__name__)

_PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


def validate_move(move: str) -> str:
    """Check that ``move`` is coordinate notation and return it lowercased.

    Raises:
        InvalidMoveError: For anything other than ``<from><to>[qrbn]``.
    """
    text = move.strip().lower()
    if len(text) not in (4, 5):
        raise InvalidMoveError(f"Invalid move: {move!r}")
    try:
        parsed = chess.Move.from_uci(text)
    except chess.InvalidMoveError as exc:
        raise InvalidMoveError(f"Invalid move: {move!r}") from exc
    # null moves and drops are valid UCI but not board moves
    if not parsed or parsed.drop is not None:
        raise InvalidMoveError(f"Invalid move: {move!r}")
    if len(text) == 5 and text[4] not in _PROMOTION_PIECES:
        raise InvalidMoveError(f"Invalid promotion piece in {move!r}")
    return text


def decode_promotion(move: str) -> int | None:
    """Return the python-chess piece type of a promotion suffix, or None."""
    if len(move) < 5:
        return None
    piece = _PROMOTION_PIECES.get(move[4].lower())
    if piece is None:
        raise InvalidMoveError(f"Invalid promotion piece in {move!r}")
    return piece


class GameplayStateMachine:
    def __init__(self, clock: GameClock | None = None, external_clock: bool = False) -> None:
        self._lock = threading.RLock()
        self.clock = clock or GameClock()
        self.external_clock = external_clock
        self.mode: Mode | None = None
        self._moves: list[str] = []
        self.ply = 1
        self.to_play = WHITE
        self.pondering = False
        self.ponder_move: str | None = None
        self.analysing = False
        self.searching = False
        # bestmove replies still owed for searches we sent "stop" to
        self._stopped_searches = 0

    @property
    def moves(self) -> list[str]:
        with self._lock:
            return list(self._moves)

    @property
    def history(self) -> str:
        """Moves played so far, space separated."""
        with self._lock:
            return " ".join(self._moves)

    def reset(self, mode: Mode, budget_ms: int | None = None) -> None:
        """Start a new game in ``mode``.

        Stopped searches stay counted: their bestmove may still arrive
        after the reset and must not enter the new game.
        """
        with self._lock:
            self.mode = mode
            self._moves.clear()
            self.ply = 1
            self.to_play = WHITE
            self.pondering = False
            self.ponder_move = None
            self.analysing = False
            if budget_ms is not None:
                self.clock.reset(budget_ms)
        logger.info("New game, mode %s", mode.value)

    def accept_move(self, move: str) -> int:
        """Append a move from either side and advance the turn.

        Returns:
            The ply number the move was played on.

        Raises:
            InvalidMoveError: If ``move`` is not coordinate notation.
        """
        text = validate_move(move)
        with self._lock:
            played_on = self.ply
            self._moves.append(text)
            self.to_play = BLACK if self.to_play == WHITE else WHITE
            if not self.external_clock:
                if self.ply == 1:
                    self.clock.start_one(self.to_play)
                else:
                    self.clock.start_one_stop_other(self.to_play)
            self.ply += 1
        logger.debug("Accepted %s, history '%s'", text, self.history)
        return played_on

    def consume_stale_bestmove(self) -> bool:
        """Decide whether an incoming bestmove must be dropped.

        A bestmove answering a search we stopped, one that ends a ponder
        search, or any bestmove while analysing, does not belong to the
        game. Otherwise the running search is over.
        """
        with self._lock:
            if self._stopped_searches:
                self._stopped_searches -= 1
                return True
            if self.pondering or self.mode is Mode.ANALYSIS:
                self.pondering = False
                self.ponder_move = None
                self.searching = False
                return True
            self.searching = False
            return False

    def start_search(self) -> None:
        """Record a ``go`` about to be sent. Call before sending it."""
        with self._lock:
            self.searching = True

    def stop_search(self) -> bool:
        """Claim the running search, if any, for a ``stop``.

        Returns True when the caller must send ``stop``. The bestmove
        that answers it will be dropped by ``consume_stale_bestmove``.
        """
        with self._lock:
            if not (self.searching or self.pondering or self.analysing):
                return False
            self._stopped_searches += 1
            self.searching = False
            self.pondering = False
            self.ponder_move = None
            self.analysing = False
            return True

    def start_pondering(self, move: str) -> None:
        with self._lock:
            self.pondering = True
            self.ponder_move = move

    def set_analysing(self, analysing: bool) -> None:
        with self._lock:
            self.analysing = analysing
            if analysing:
                self.pondering = False
                self.ponder_move = None

    def snapshot(self) -> dict:
        """Game fields read under one lock, for ``SessionSnapshot``."""
        with self._lock:
            return {
                "mode": self.mode.value if self.mode is not None else None,
                "ply": self.ply,
                "to_play": self.to_play,
                "moves": list(self._moves),
                "pondering": self.pondering,
                "ponder_move": self.ponder_move,
                "analysing": self.analysing,
            }

    def position_command(self, extra_move: str | None = None) -> str:
        with self._lock:
            moves = list(self._moves)
        if extra_move is not None:
            moves.append(extra_move)
        if not moves:
            return "position startpos"
        return "position startpos moves " + " ".join(moves)

    def go_command(self) -> str:
        return (
            f"go wtime {self.clock.remaining_ms(WHITE)} "
            f"btime {self.clock.remaining_ms(BLACK)}"
        )

    def orientation(self) -> tuple[Mode | None, int]:
        """Mode and side to move, read together."""
        with self._lock:
            return self.mode, self.to_play
