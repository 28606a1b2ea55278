"""A tiny engine that mimics a UCI engine for subprocess tests.

Plays the alphabetically first legal move. ``go infinite`` and
``go ponder`` searches only end on ``stop``.
"""

import sys

import chess


def send_command(command: str) -> None:
    """Send UCI output without buffering."""
    print(command, flush=True)  # noqa: T201


def _first_move(board: chess.Board) -> str | None:
    moves = sorted(m.uci() for m in board.legal_moves)
    return moves[0] if moves else None


def _report(board: chess.Board) -> None:
    move = _first_move(board)
    if move is None:
        send_command("bestmove (none)")
        return
    send_command(f"info depth 1 seldepth 1 time 1 score cp 20 nps 1000 pv {move}")
    send_command(f"bestmove {move}")


def main() -> None:
    board = chess.Board()
    searching = False

    for raw in sys.stdin:
        words = raw.split()
        if not words:
            continue
        command, rest = words[0], words[1:]

        if command == "quit":
            break
        elif command == "uci":
            send_command("id name FakeFish 1.0")
            send_command("id author uci-bridge tests")
            send_command("option name Threads type spin default 1 min 1 max 512")
            send_command("option name Ponder type check default false")
            send_command("uciok")
        elif command == "isready":
            send_command("readyok")
        elif command == "ucinewgame":
            board = chess.Board()
        elif command == "position":
            board = chess.Board()
            if len(rest) > 1 and rest[1] == "moves":
                for move in rest[2:]:
                    board.push_uci(move)
        elif command == "go":
            if "infinite" in rest or "ponder" in rest:
                searching = True
                send_command("info depth 1 score cp 20 nps 1000")
            else:
                _report(board)
        elif command == "stop" and searching:
            searching = False
            _report(board)


if __name__ == "__main__":
    main()
