"""Tests for token dispatch: session updates, best moves and info lines."""

from __future__ import annotations

import queue

import chess
import pytest

from uci_bridge.dispatcher import Dispatcher, orient_score, parse_info, parse_option
from uci_bridge.gameplay import GameplayStateMachine
from uci_bridge.models import (
    BLACK,
    WHITE,
    AnalysisBestLineEvent,
    AnalysisNodesPerSecondEvent,
    AnalysisScoreEvent,
    EngineNameEvent,
    Mode,
    MoveAcceptedEvent,
    Score,
)
from uci_bridge.session import SessionState
from uci_bridge.tokenizer import LineTokenizer

_INFO_LINE = "info depth 10 score cp 35 nps 120000 pv e2e4 e7e5"


class Harness:
    """Dispatcher wired to real state objects and a recording send()."""

    def __init__(self, mode: Mode = Mode.ENGINE_WHITE) -> None:
        self.session = SessionState()
        self.gameplay = GameplayStateMachine()
        self.gameplay.reset(mode, budget_ms=60_000)
        self.sent: list[str] = []
        self.events: queue.Queue = queue.Queue()
        self.dispatcher = Dispatcher(self.session, self.gameplay, self.sent.append, self.events)
        self.tokenizer = LineTokenizer()

    def feed(self, raw: str) -> None:
        for token in self.tokenizer.feed(raw.encode("utf-8")):
            self.dispatcher.dispatch(token)

    def drain(self) -> list:
        out = []
        while not self.events.empty():
            out.append(self.events.get_nowait())
        return out


@pytest.fixture
def harness():
    return Harness()


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class TestSessionTokens:

    def test_uciok_sets_protocol_ready(self, harness):
        harness.feed("uciok\n")
        assert harness.session.protocol_ready

    def test_readyok_sets_ready_for_command(self, harness):
        ticket = harness.session.request_ready()
        harness.feed("readyok\n")
        assert harness.session.ready_for_command
        assert harness.session.wait_ready(ticket, timeout=0)

    def test_id_name(self, harness):
        harness.feed("id name Stockfish 16\n")
        assert harness.session.name == "Stockfish 16"
        assert harness.drain() == [EngineNameEvent(name="Stockfish 16")]

    def test_id_author(self, harness):
        harness.feed("id author T. Romstad\n")
        assert harness.session.author == "T. Romstad"
        assert harness.drain() == []

    def test_option_goes_into_registry(self, harness):
        harness.feed("option name Skill Level type spin default 20 min 0 max 20\n")
        option = harness.session.options["Skill Level"]
        assert (option.type, option.default, option.min, option.max) == ("spin", "20", 0, 20)

    def test_unknown_line_is_ignored(self, harness):
        harness.feed("Stockfish 16 by the Stockfish developers\n")
        assert harness.drain() == []
        assert harness.sent == []


class TestParseOption:

    def test_combo_with_vars(self):
        option = parse_option(
            "option name Style type combo default Normal var Solid var Normal var Risky"
        )
        assert option.type == "combo"
        assert option.default == "Normal"
        assert option.vars == ["Solid", "Normal", "Risky"]

    def test_empty_string_default(self):
        option = parse_option("option name SyzygyPath type string default <empty>")
        assert option.default == ""

    def test_button_has_no_default(self):
        option = parse_option("option name Clear Hash type button")
        assert option.name == "Clear Hash"
        assert option.default is None

    def test_malformed(self):
        assert parse_option("option name Hash") is None


# ---------------------------------------------------------------------------
# Best moves
# ---------------------------------------------------------------------------


class TestBestMove:

    def test_bestmove_with_ponder(self, harness):
        harness.feed("bestmove e2e4 ponder e7e5\n")

        assert harness.gameplay.history == "e2e4"
        assert harness.gameplay.ply == 2
        assert harness.gameplay.pondering
        assert harness.gameplay.ponder_move == "e7e5"
        assert harness.sent == ["position startpos moves e2e4 e7e5", "go ponder"]
        assert harness.drain() == [
            MoveAcceptedEvent(move="e2e4", source="engine", ply=1, promotion=None)
        ]

    def test_plain_bestmove_does_not_ponder(self, harness):
        harness.feed("bestmove g1f3\n")
        assert harness.gameplay.moves == ["g1f3"]
        assert not harness.gameplay.pondering
        assert harness.sent == []

    def test_promotion_is_forwarded(self, harness):
        harness.feed("bestmove a7a8n\n")
        event = harness.drain()[0]
        assert event.move == "a7a8n"
        assert event.promotion == chess.KNIGHT

    def test_bestmove_after_ponder_is_skipped(self, harness):
        harness.feed("bestmove e2e4 ponder e7e5\n")
        harness.drain()
        harness.sent.clear()

        harness.feed("bestmove d2d4 ponder d7d5\n")
        assert harness.gameplay.moves == ["e2e4"]
        assert not harness.gameplay.pondering
        assert harness.sent == []
        assert harness.drain() == []

    def test_bestmove_in_analysis_is_skipped(self):
        harness = Harness(Mode.ANALYSIS)
        harness.feed("bestmove e2e4 ponder e7e5\n")
        assert harness.gameplay.moves == []
        assert harness.sent == []

    def test_bestmove_none_is_noop(self, harness):
        harness.feed("bestmove (none)\n")
        assert harness.gameplay.moves == []
        assert harness.drain() == []

    def test_malformed_bestmove_is_dropped(self, harness):
        harness.feed("bestmove e9e4\n")
        assert harness.gameplay.moves == []
        assert harness.drain() == []


# ---------------------------------------------------------------------------
# Info lines
# ---------------------------------------------------------------------------


class TestParseInfo:

    def test_all_fields(self):
        fields = parse_info("info depth 10 seldepth 14 time 250 score cp 35 nps 120000 pv e2e4 e7e5")
        assert fields == {
            "depth": 10, "seldepth": 14, "time": 250, "score": Score(cp=35),
            "nps": 120000, "pv": ["e2e4", "e7e5"],
        }

    def test_mate(self):
        assert parse_info("info score mate -2")["score"] == Score(mate=-2)

    def test_score_bound_is_ignored(self):
        fields = parse_info("info depth 5 score cp 12 lowerbound nodes 100")
        assert fields["score"] == Score(cp=12)
        assert fields["nodes"] == 100

    def test_pv_with_promotion(self):
        assert parse_info("info pv e7e8q d1d8")["pv"] == ["e7e8q", "d1d8"]

    def test_string_is_not_parsed(self):
        assert parse_info("info string depth 3 pv e2e4") == {}

    def test_fields_are_independent(self):
        assert parse_info("info nps 5000") == {"nps": 5000}


class TestInfoDispatch:

    @pytest.mark.parametrize("mode, to_play, expected", [
        (Mode.ENGINE_WHITE, WHITE, "0.35"),
        (Mode.ENGINE_BLACK, WHITE, "-0.35"),
        (Mode.ANALYSIS, WHITE, "0.35"),
        (Mode.ANALYSIS, BLACK, "-0.35"),
    ])
    def test_score_orientation(self, mode, to_play, expected):
        harness = Harness(mode)
        if to_play == BLACK:
            harness.gameplay.accept_move("e2e4")
        harness.feed(_INFO_LINE + "\n")
        events = harness.drain()
        assert AnalysisScoreEvent(text=expected) in events

    def test_all_three_events(self, harness):
        harness.feed(_INFO_LINE + "\n")
        assert harness.drain() == [
            AnalysisScoreEvent(text="0.35"),
            AnalysisBestLineEvent(moves=("e2e4", "e7e5")),
            AnalysisNodesPerSecondEvent(text="120 kNps"),
        ]
        analysis = harness.session.analysis
        assert analysis.score == Score(cp=35)
        assert analysis.depth == 10

    def test_mate_text(self, harness):
        harness.feed("info score mate 3\n")
        assert harness.drain() == [AnalysisScoreEvent(text="#3")]

    def test_mate_flipped_for_engine_black(self):
        harness = Harness(Mode.ENGINE_BLACK)
        harness.feed("info score mate 3\n")
        assert harness.drain() == [AnalysisScoreEvent(text="#-3")]

    def test_partial_info_keeps_earlier_fields(self, harness):
        harness.feed(_INFO_LINE + "\n")
        harness.feed("info nps 90000\n")
        analysis = harness.session.analysis
        assert analysis.score == Score(cp=35)
        assert analysis.best_line == ["e2e4", "e7e5"]
        assert analysis.nps_text == "90 kNps"

    def test_info_without_fields_emits_nothing(self, harness):
        harness.feed("info string hello\n")
        assert harness.drain() == []


def test_orient_score_engine_white_unchanged():
    score = Score(cp=-80)
    assert orient_score(score, Mode.ENGINE_WHITE, BLACK) == score
