"""Apply engine tokens to the session and game state.

Runs on the reader thread. Each token produces exactly one state
transition; anything the UI should know about is put on the event
queue rather than pushed into UI code directly.
"""

from __future__ import annotations

import logging
import queue
from typing import Callable

from uci_bridge.errors import InvalidMoveError
from uci_bridge.gameplay import GameplayStateMachine, decode_promotion, validate_move
from uci_bridge.models import (
    BLACK,
    AnalysisBestLineEvent,
    AnalysisNodesPerSecondEvent,
    AnalysisScoreEvent,
    EngineNameEvent,
    EngineOption,
    Mode,
    MoveAcceptedEvent,
    Score,
)
from uci_bridge.session import SessionState
from uci_bridge.tokenizer import Token, TokenKind

logger = logging.getLogger(__name__)

_INT_FIELDS = ("depth", "seldepth", "time", "nodes", "nps", "multipv", "hashfull", "tbhits")
_SQUARE_FILES = "abcdefgh"
_SQUARE_RANKS = "12345678"


def _is_coordinate_move(word: str) -> bool:
    if len(word) not in (4, 5):
        return False
    if word[0] not in _SQUARE_FILES or word[2] not in _SQUARE_FILES:
        return False
    if word[1] not in _SQUARE_RANKS or word[3] not in _SQUARE_RANKS:
        return False
    return len(word) == 4 or word[4] in "qrbn"


def _to_int(word: str | None) -> int | None:
    if word is None:
        return None
    try:
        return int(word)
    except ValueError:
        return None


def parse_info(line: str) -> dict:
    """Extract the fields of an ``info`` line.

    Every field is optional. ``score`` is a Score in the engine's own
    perspective; ``pv`` is a list of coordinate moves.

    Example:
        info depth 10 score cp 35 nps 120000 pv e2e4 e7e5
        -> {"depth": 10, "score": Score(cp=35), "nps": 120000, "pv": ["e2e4", "e7e5"]}
    """
    words = line.split()
    out: dict = {}
    i = 1 if words and words[0] == "info" else 0
    while i < len(words):
        word = words[i]
        if word in _INT_FIELDS:
            value = _to_int(words[i + 1] if i + 1 < len(words) else None)
            if value is not None:
                out[word] = value
            i += 2
        elif word == "score":
            kind = words[i + 1] if i + 1 < len(words) else ""
            value = _to_int(words[i + 2] if i + 2 < len(words) else None)
            if value is not None and kind == "cp":
                out["score"] = Score(cp=value)
            elif value is not None and kind == "mate":
                out["score"] = Score(mate=value)
            i += 3
        elif word == "pv":
            moves = []
            i += 1
            while i < len(words) and _is_coordinate_move(words[i]):
                moves.append(words[i])
                i += 1
            out["pv"] = moves
        elif word == "string":
            # free text to end of line
            break
        else:
            i += 1
    return out


def parse_option(line: str) -> EngineOption | None:
    """Parse ``option name <N> type <T> [default X] [min A] [max B] [var V]...``."""
    words = line.split()
    if len(words) < 5 or words[0] != "option" or words[1] != "name" or "type" not in words[2:]:
        return None
    type_index = words.index("type", 2)
    name = " ".join(words[2:type_index])
    if not name or type_index + 1 >= len(words):
        return None
    option = EngineOption(name=name, type=words[type_index + 1])

    keywords = {"default", "min", "max", "var"}
    i = type_index + 2
    while i < len(words):
        key = words[i]
        j = i + 1
        while j < len(words) and words[j] not in keywords:
            j += 1
        value = " ".join(words[i + 1:j])
        if key == "default":
            option.default = value if value != "<empty>" else ""
        elif key == "min":
            option.min = _to_int(value)
        elif key == "max":
            option.max = _to_int(value)
        elif key == "var":
            option.vars.append(value)
        i = j
    return option


def orient_score(score: Score, mode: Mode | None, to_play: int) -> Score:
    """Turn the engine's own-side score into the human's perspective."""
    flip = mode is Mode.ENGINE_BLACK or (mode is Mode.ANALYSIS and to_play == BLACK)
    if not flip:
        return score
    return Score(
        cp=-score.cp if score.cp is not None else None,
        mate=-score.mate if score.mate is not None else None,
    )


def format_nps(nps: int) -> str:
    return f"{nps // 1000} kNps"


class Dispatcher:
    def __init__(
        self,
        session: SessionState,
        gameplay: GameplayStateMachine,
        send: Callable[[str], None],
        events: queue.Queue,
    ) -> None:
        self._session = session
        self._gameplay = gameplay
        self._send = send
        self._events = events
        self._handlers: dict[TokenKind, Callable[[Token], None]] = {
            TokenKind.OK: self._on_ok,
            TokenKind.READYOK: self._on_readyok,
            TokenKind.ID_NAME: self._on_id_name,
            TokenKind.ID_AUTHOR: self._on_id_author,
            TokenKind.OPTION: self._on_option,
            TokenKind.BESTMOVE_NONE: self._on_bestmove_none,
            TokenKind.BESTMOVE: self._on_bestmove,
            TokenKind.BESTMOVE_WITH_PONDER: self._on_bestmove,
            TokenKind.INFO: self._on_info,
            TokenKind.UNKNOWN: self._on_unknown,
        }

    def dispatch(self, token: Token) -> None:
        handler = self._handlers.get(token.kind)
        if handler is not None:
            handler(token)

    def _on_ok(self, token: Token) -> None:
        logger.info("Engine speaks UCI")
        self._session.mark_protocol_ready()

    def _on_readyok(self, token: Token) -> None:
        self._session.mark_ready()

    def _on_id_name(self, token: Token) -> None:
        name = token.payload[0]
        logger.info("Engine name: %s", name)
        self._session.set_identity(name=name)
        self._events.put(EngineNameEvent(name=name))

    def _on_id_author(self, token: Token) -> None:
        logger.info("Engine author: %s", token.payload[0])
        self._session.set_identity(author=token.payload[0])

    def _on_option(self, token: Token) -> None:
        option = parse_option(token.line)
        if option is None:
            logger.debug("Unparseable option line: %s", token.line)
            return
        logger.debug("Option %s, type: %s", option.name, option.type)
        self._session.register_option(option)

    def _on_bestmove_none(self, token: Token) -> None:
        if self._gameplay.consume_stale_bestmove():
            return
        logger.info("Engine has no move to play")

    def _on_bestmove(self, token: Token) -> None:
        best = token.payload[0]
        ponder = token.payload[1] if token.kind is TokenKind.BESTMOVE_WITH_PONDER else None

        if self._gameplay.consume_stale_bestmove():
            logger.debug("Skipping best move of a stopped search: %s", best)
            return

        try:
            best = validate_move(best)
            promotion = decode_promotion(best)
            if ponder is not None:
                ponder = validate_move(ponder)
        except InvalidMoveError as exc:
            logger.warning("Ignoring malformed best move line %r: %s", token.line, exc)
            return

        if promotion is not None:
            logger.debug("Handling promotion from engine %s -> %d", best, promotion)
        ply = self._gameplay.accept_move(best)
        self._events.put(
            MoveAcceptedEvent(move=best, source="engine", ply=ply, promotion=promotion)
        )

        if ponder is not None:
            logger.debug("Pondering on %s", ponder)
            self._gameplay.start_pondering(ponder)
            self._send(self._gameplay.position_command(extra_move=ponder))
            self._send("go ponder")

    def _on_info(self, token: Token) -> None:
        fields = parse_info(token.line)
        if not fields:
            return
        mode, to_play = self._gameplay.orientation()

        score = fields.get("score")
        if score is not None:
            score = orient_score(score, mode, to_play)
        nps_text = format_nps(fields["nps"]) if "nps" in fields else None
        pv = fields.get("pv")

        with self._session.lock:
            analysis = self._session.analysis
            if score is not None:
                analysis.score = score
            if pv:
                analysis.best_line = list(pv)
            if nps_text is not None:
                analysis.nps_text = nps_text
            if "depth" in fields:
                analysis.depth = fields["depth"]
            if "seldepth" in fields:
                analysis.seldepth = fields["seldepth"]
            if "time" in fields:
                analysis.time_ms = fields["time"]

        if score is not None:
            self._events.put(AnalysisScoreEvent(text=score.text))
        if pv:
            self._events.put(AnalysisBestLineEvent(moves=tuple(pv)))
        if nps_text is not None:
            self._events.put(AnalysisNodesPerSecondEvent(text=nps_text))

    def _on_unknown(self, token: Token) -> None:
        logger.debug("Unmatched engine line: %r", token.line)
