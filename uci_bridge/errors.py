"""Exception hierarchy for the UCI adapter.

Everything the adapter raises derives from AdapterError so callers
can catch one type at the UI boundary.
"""

from __future__ import annotations


class AdapterError(Exception):
    """Base class for adapter failures."""


class SpawnError(AdapterError):
    """The engine executable could not be started."""


class HandshakeError(AdapterError):
    """The engine never answered the initial ``uci`` with ``uciok``."""


class WriteError(AdapterError):
    """A command could not be written to the engine's stdin."""


class EngineLostError(AdapterError):
    """The engine's output stream stayed closed past the retry limit."""


class GameNotStartedError(AdapterError):
    """A move was submitted before any game was started."""


class InvalidMoveError(AdapterError, ValueError):
    """A move string is not in coordinate notation (e.g. ``e2e4``, ``a7a8q``)."""
