"""Terminal chess UI driving a UCI engine through the adapter.

Renders a Rich board plus an analysis sidebar fed from the adapter's
event queue. Move legality is checked here with python-chess; the
adapter only sees coordinate moves.

Usage:
    python -m uci_bridge.tui --mode engine_black
    python -m uci_bridge.tui --mode analysis --engine /usr/bin/stockfish
"""

from __future__ import annotations

import argparse
import queue
import sys

import chess
from rich.console import Console
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from uci_bridge.adapter import UciAdapter
from uci_bridge.config import AdapterConfig, configure_logging
from uci_bridge.errors import AdapterError
from uci_bridge.models import (
    AnalysisBestLineEvent,
    AnalysisNodesPerSecondEvent,
    AnalysisScoreEvent,
    EngineLostEvent,
    EngineNameEvent,
    Mode,
    MoveAcceptedEvent,
)

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_HIGHLIGHT = "yellow"

_ENGINE_COLOR = {
    Mode.ENGINE_WHITE: chess.WHITE,
    Mode.ENGINE_BLACK: chess.BLACK,
}


class GameView:
    """UI-side mirror of the game, updated only from adapter events."""

    def __init__(self, mode: Mode) -> None:
        self.mode = mode
        self.board = chess.Board()
        self.engine_name = ""
        self.score: str | None = None
        self.best_line: list[str] = []
        self.nps: str | None = None
        self.lost_reason: str | None = None

    def apply(self, event) -> None:
        if isinstance(event, MoveAcceptedEvent):
            self.board.push(chess.Move.from_uci(event.move))
        elif isinstance(event, EngineNameEvent):
            self.engine_name = event.name
        elif isinstance(event, AnalysisScoreEvent):
            self.score = event.text
        elif isinstance(event, AnalysisBestLineEvent):
            self.best_line = list(event.moves)
        elif isinstance(event, AnalysisNodesPerSecondEvent):
            self.nps = event.text
        elif isinstance(event, EngineLostEvent):
            self.lost_reason = event.reason

    @property
    def engine_to_move(self) -> bool:
        engine_color = _ENGINE_COLOR.get(self.mode)
        return engine_color is not None and self.board.turn == engine_color


def render_board(view: GameView) -> Layout:
    """Render the board and sidebar for ``view``."""
    layout = Layout()
    layout.split_row(
        Layout(name="board", ratio=2),
        Layout(name="sidebar", ratio=1),
    )
    layout["board"].update(_render_board_panel(view))
    layout["sidebar"].update(_render_sidebar(view))
    return layout


def _render_board_panel(view: GameView) -> Panel:
    board = view.board
    is_flipped = view.mode is Mode.ENGINE_WHITE

    highlight_squares: set[int] = set()
    if board.move_stack:
        last = board.move_stack[-1]
        highlight_squares.update((last.from_square, last.to_square))

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if is_flipped else range(7, -1, -1)
    files = list(range(7, -1, -1)) if is_flipped else list(range(8))

    for rank in ranks:
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in files:
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)
            is_light = (rank + file) % 2 == 1
            bg = _HIGHLIGHT if sq in highlight_squares else (_LIGHT_SQ if is_light else _DARK_SQ)
            symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?") if piece is not None else " "
            row.append(Text(f" {symbol} ", style=f"on {bg}"))
        table.add_row(*row)

    file_labels = [Text("  ")]
    for f in files:
        file_labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*file_labels)

    title = view.engine_name or "UCI engine"
    if board.is_game_over():
        title = f"Game Over: {board.result()}"
    return Panel(table, title=title, border_style="blue")


def _render_sidebar(view: GameView) -> Panel:
    parts: list[str] = [f"[bold]Mode:[/bold] {view.mode.value}", ""]

    moves = [m.uci() for m in view.board.move_stack]
    if moves:
        parts.append("[bold]Moves:[/bold]")
        for i in range(0, len(moves), 2):
            black_move = moves[i + 1] if i + 1 < len(moves) else ""
            parts.append(f"  {i // 2 + 1}. {moves[i]} {black_move}")
        parts.append("")

    if view.score is not None:
        parts.append(f"[bold]Score:[/bold] {view.score}")
    if view.best_line:
        parts.append(f"[bold]Line:[/bold] {' '.join(view.best_line[:8])}")
    if view.nps is not None:
        parts.append(f"[bold]Speed:[/bold] {view.nps}")
    if view.lost_reason:
        parts.append("")
        parts.append(f"[red]Engine lost: {view.lost_reason}[/red]")

    return Panel("\n".join(parts), title="Analysis", border_style="green")


def _wait_for_engine_move(adapter: UciAdapter, view: GameView) -> None:
    """Apply events until the engine has moved or is gone."""
    while view.engine_to_move and view.lost_reason is None:
        try:
            view.apply(adapter.events.get(timeout=0.5))
        except queue.Empty:
            continue


def _play_loop(adapter: UciAdapter, view: GameView, console: Console) -> None:
    while True:
        if view.engine_to_move:
            _wait_for_engine_move(adapter, view)
        for event in adapter.drain_events(timeout=0.5 if view.mode is Mode.ANALYSIS else None):
            view.apply(event)

        console.print(render_board(view))
        if view.lost_reason is not None or view.board.is_game_over():
            return

        text = console.input("Your move (UCI, 'q' to quit): ").strip().lower()
        if text == "q":
            console.print("Game ended by user.")
            return
        try:
            move = chess.Move.from_uci(text)
        except chess.InvalidMoveError:
            console.print("[red]Invalid move format. Use coordinates, e.g. e2e4.[/red]")
            continue
        if move not in view.board.legal_moves:
            console.print("[red]Illegal move. Try again.[/red]")
            continue

        if not adapter.submit_user_move(text):
            console.print("[yellow]Engine did not confirm readiness.[/yellow]")
        for event in adapter.drain_events():
            view.apply(event)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for tui.py."""
    parser = argparse.ArgumentParser(description="Play or analyse against a UCI engine")
    parser.add_argument(
        "--mode", choices=[m.value for m in Mode], default=Mode.ENGINE_BLACK.value,
        help="Who the engine plays (default: engine_black)",
    )
    parser.add_argument("--engine", help="Engine executable (default: auto-detect)")
    parser.add_argument(
        "--time", type=int, default=300, help="Seconds per side (default 300)"
    )
    parser.add_argument(
        "--ready-timeout", type=float, help="Seconds to wait for readyok"
    )
    parser.add_argument("--log-level", help="Logging level (default INFO)")
    args = parser.parse_args(argv)

    config = AdapterConfig.from_env()
    if args.engine:
        config.engine_path = args.engine
    if args.ready_timeout is not None:
        config.ready_timeout = args.ready_timeout
    if args.log_level:
        config.log_level = args.log_level.upper()
    configure_logging(config.log_level)

    console = Console()
    mode = Mode(args.mode)
    adapter = UciAdapter(config)
    try:
        adapter.start()
        adapter.start_game(mode, time_control_ms=args.time * 1000)
        _play_loop(adapter, GameView(mode), console)
    except (AdapterError, FileNotFoundError) as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        adapter.shutdown()


if __name__ == "__main__":
    main()
