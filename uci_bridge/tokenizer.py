"""Split the engine's byte stream into lines and classify each line.

Grammar (one token per complete line):

    uciok                          -> OK
    readyok                        -> READYOK
    id name <text>                 -> ID_NAME      payload (text,)
    id author <text>               -> ID_AUTHOR    payload (text,)
    option name <N> type <T> ...   -> OPTION       payload (N, T)
    bestmove <m> ponder <p>        -> BESTMOVE_WITH_PONDER payload (m, p)
    bestmove <m>                   -> BESTMOVE     payload (m,)
    bestmove (none) | bestmove 0000 -> BESTMOVE_NONE
    info ...                       -> INFO         fields parsed by the dispatcher
    <blank>                        -> EMPTY_LINE
    anything else                  -> UNKNOWN
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator

logger = logging.getLogger(__name__)

_NO_MOVE = {"(none)", "0000"}

MAX_LINE_BYTES = 64 * 1024


class TokenKind(Enum):
    OK = auto()
    READYOK = auto()
    ID_NAME = auto()
    ID_AUTHOR = auto()
    OPTION = auto()
    BESTMOVE = auto()
    BESTMOVE_WITH_PONDER = auto()
    BESTMOVE_NONE = auto()
    INFO = auto()
    EMPTY_LINE = auto()
    UNKNOWN = auto()


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    line: str
    payload: tuple[str, ...] = ()


def _rest_after(text: str, words: int) -> str:
    """Return ``text`` with its first ``words`` whitespace-separated words removed."""
    parts = text.split(None, words)
    return parts[words] if len(parts) > words else ""


def _classify_option(line: str, words: list[str]) -> Token:
    if len(words) < 2 or words[1] != "name" or "type" not in words[2:]:
        return Token(TokenKind.UNKNOWN, line)
    type_index = words.index("type", 2)
    name = " ".join(words[2:type_index])
    if not name or type_index + 1 >= len(words):
        return Token(TokenKind.UNKNOWN, line)
    return Token(TokenKind.OPTION, line, (name, words[type_index + 1]))


def _classify_bestmove(line: str, words: list[str]) -> Token:
    if len(words) < 2:
        return Token(TokenKind.UNKNOWN, line)
    move = words[1]
    if move in _NO_MOVE:
        return Token(TokenKind.BESTMOVE_NONE, line)
    if len(words) >= 4 and words[2] == "ponder" and words[3] not in _NO_MOVE:
        return Token(TokenKind.BESTMOVE_WITH_PONDER, line, (move, words[3]))
    return Token(TokenKind.BESTMOVE, line, (move,))


def classify_line(line: str) -> Token:
    """Classify one complete protocol line (without its terminator)."""
    text = line.strip()
    if not text:
        return Token(TokenKind.EMPTY_LINE, line)

    words = text.split()
    head = words[0]

    if head == "uciok" and len(words) == 1:
        return Token(TokenKind.OK, line)
    if head == "readyok" and len(words) == 1:
        return Token(TokenKind.READYOK, line)
    if head == "id" and len(words) >= 2:
        if words[1] == "name":
            return Token(TokenKind.ID_NAME, line, (_rest_after(text, 2),))
        if words[1] == "author":
            return Token(TokenKind.ID_AUTHOR, line, (_rest_after(text, 2),))
    if head == "option":
        return _classify_option(line, words)
    if head == "bestmove":
        return _classify_bestmove(line, words)
    if head == "info":
        return Token(TokenKind.INFO, line)

    return Token(TokenKind.UNKNOWN, line)


class LineTokenizer:
    """Incremental tokenizer over raw engine output.

    ``feed`` may receive any slice of the stream: half a line, several
    lines, or a line split across many reads. Incomplete trailing data
    stays buffered until its terminator arrives. A line that grows past
    ``max_line_bytes`` without a terminator is discarded up to its end.
    """

    def __init__(self, encoding: str = "utf-8", max_line_bytes: int = MAX_LINE_BYTES) -> None:
        self._encoding = encoding
        self._max_line_bytes = max_line_bytes
        self._buffer = bytearray()
        self._discarding = False

    @property
    def pending(self) -> bytes:
        """Bytes of the current incomplete line."""
        return bytes(self._buffer)

    def feed(self, data: bytes) -> Iterator[Token]:
        """Buffer ``data`` and return the tokens for every line it completes.

        The data is buffered immediately; tokens are produced lazily.
        Lines not consumed from the returned iterator are emitted by the
        next iterator instead, never twice.
        """
        self._buffer.extend(data)
        return self._drain()

    def _drain(self) -> Iterator[Token]:
        while True:
            end = self._buffer.find(b"\n")
            if end < 0:
                if len(self._buffer) > self._max_line_bytes:
                    logger.warning(
                        "Discarding over-long engine line (%d bytes so far)", len(self._buffer)
                    )
                    self._buffer.clear()
                    self._discarding = True
                return
            raw = bytes(self._buffer[:end])
            del self._buffer[: end + 1]
            if self._discarding:
                self._discarding = False
                continue
            line = raw.decode(self._encoding, errors="replace").rstrip("\r")
            yield classify_line(line)
