"""Shared data models for the UCI adapter.

Events are the contract between the background reader and whatever UI
consumes ``UciAdapter.events``. They are frozen so they can cross the
thread boundary safely and be serialized with ``dataclasses.asdict``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Mode(str, Enum):
    """Who the engine plays for the current game."""

    ENGINE_WHITE = "engine_white"
    ENGINE_BLACK = "engine_black"
    ANALYSIS = "analysis"


WHITE = 0
BLACK = 1


@dataclass(frozen=True)
class Score:
    """Engine evaluation already oriented to the human's point of view."""

    cp: int | None = None
    mate: int | None = None

    @property
    def text(self) -> str:
        if self.mate is not None:
            return f"#{self.mate}"
        return f"{(self.cp or 0) / 100.0:.2f}"


@dataclass
class EngineOption:
    """One ``option`` line advertised by the engine."""

    name: str
    type: str
    default: str | None = None
    min: int | None = None
    max: int | None = None
    vars: list[str] = field(default_factory=list)


@dataclass
class AnalysisInfo:
    """Latest search figures. Overwritten field by field on every info line."""

    score: Score | None = None
    best_line: list[str] = field(default_factory=list)
    nps_text: str | None = None
    depth: int | None = None
    seldepth: int | None = None
    time_ms: int | None = None


# ---------------------------------------------------------------------------
# Outbound events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineNameEvent:
    name: str


@dataclass(frozen=True)
class MoveAcceptedEvent:
    move: str
    source: str  # "engine" or "user"
    ply: int  # ply number of this move, 1-based
    promotion: int | None = None  # chess.QUEEN etc.


@dataclass(frozen=True)
class AnalysisScoreEvent:
    text: str


@dataclass(frozen=True)
class AnalysisBestLineEvent:
    moves: tuple[str, ...]


@dataclass(frozen=True)
class AnalysisNodesPerSecondEvent:
    text: str


@dataclass(frozen=True)
class EngineLostEvent:
    reason: str


@dataclass
class SessionSnapshot:
    """Point-in-time copy of the adapter state for display and sync."""

    engine_name: str
    engine_author: str
    mode: str | None
    ply: int
    to_play: int
    moves: list[str] = field(default_factory=list)
    pondering: bool = False
    ponder_move: str | None = None
    analysing: bool = False
    protocol_ready: bool = False
    ready_for_command: bool = False
    alive: bool = True
    degraded: bool = False
    lost_reason: str | None = None
    score: str | None = None
    best_line: list[str] = field(default_factory=list)
    nodes_per_second: str | None = None
    depth: int | None = None
    options: list[str] = field(default_factory=list)
