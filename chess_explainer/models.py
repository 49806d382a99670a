"""Shared data models for Chess Explainer.

Move, GameRecord, TemporaryBranch and the cursor union are the shared
contract between the navigation core, the MCP server and the TUI.
Engine evaluations and chat messages are plain records validated on
construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import chess

_SCORE_TYPES = ("cp", "mate")
_CHAT_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class Move:
    """A single played half-move, as produced by the rules engine."""

    color: str
    piece: str
    from_square: str
    to_square: str
    san: str
    promotion: str | None = None
    captured: str | None = None
    flags: str = "n"

    @property
    def uci(self) -> str:
        """Origin + destination + optional promotion letter (e.g. 'e7e8q')."""
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"


@dataclass(frozen=True)
class GameMetadata:
    """PGN header tags for a loaded game."""

    event: str | None = None
    site: str | None = None
    date: str | None = None
    round: str | None = None
    white: str | None = None
    black: str | None = None
    result: str | None = None
    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class GameRecord:
    """The recorded main line of a game plus where it starts from."""

    moves: tuple[Move, ...] = ()
    starting_fen: str = chess.STARTING_FEN
    metadata: GameMetadata = field(default_factory=GameMetadata)
    pgn: str = ""

    @property
    def tip(self) -> int:
        """Index of the last main-line move, -1 when the line is empty."""
        return len(self.moves) - 1


@dataclass(frozen=True)
class TemporaryBranch:
    """An exploratory continuation diverging after main-line index base_index."""

    base_index: int
    moves: tuple[Move, ...]
    fen: str


@dataclass(frozen=True)
class OnMainLine:
    index: int = -1


@dataclass(frozen=True)
class OnBranch:
    branch: TemporaryBranch

    @property
    def index(self) -> int:
        # Branch addressing: the branch occupies the slot after its base.
        return self.branch.base_index + 1


Cursor = Union[OnMainLine, OnBranch]


@dataclass(frozen=True)
class NavigationState:
    """Immutable snapshot of everything the viewer displays."""

    game: GameRecord = field(default_factory=GameRecord)
    cursor: Cursor = field(default_factory=OnMainLine)

    @property
    def branch(self) -> TemporaryBranch | None:
        if isinstance(self.cursor, OnBranch):
            return self.cursor.branch
        return None

    @property
    def index(self) -> int:
        return self.cursor.index


@dataclass(frozen=True)
class EngineLine:
    """One principal variation returned by the analysis engine.

    Scores are from White's point of view: positive favours White.
    """

    score_type: str
    value: int
    best_move: str
    best_move_san: str
    line: list[str] = field(default_factory=list)
    depth: int = 0
    rank: int = 1

    def __post_init__(self) -> None:
        if self.score_type not in _SCORE_TYPES:
            raise ValueError(f"Unknown score type: {self.score_type!r}")
        if self.depth < 0:
            raise ValueError(f"Depth must be non-negative, got {self.depth}")

    def describe(self) -> str:
        """Human-readable score, e.g. '+0.35' or 'Mate in 3 for Black'."""
        if self.score_type == "mate":
            if self.value == 0:
                return "Checkmate"
            side = "White" if self.value > 0 else "Black"
            return f"Mate in {abs(self.value)} for {side}"
        return f"{self.value / 100.0:+.2f}"


@dataclass(frozen=True)
class EngineEvaluation:
    """Engine output for a single position."""

    fen: str
    lines: list[EngineLine] = field(default_factory=list)

    @property
    def best(self) -> EngineLine | None:
        return self.lines[0] if self.lines else None


@dataclass(frozen=True)
class EvaluationPoint:
    """One point of a whole-game evaluation graph."""

    index: int
    evaluation: float
    is_critical: bool = False


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str
    timestamp: int

    def __post_init__(self) -> None:
        if self.role not in _CHAT_ROLES:
            raise ValueError(f"Unknown chat role: {self.role!r}")


@dataclass(frozen=True)
class ImportedGame:
    """A game returned by an import provider, before it is parsed."""

    pgn: str
    white: str = "?"
    black: str = "?"
    result: str = "*"
    timestamp: int = 0
    url: str | None = None
