"""Navigation controller for the game viewer.

Navigator owns the single NavigationState snapshot and turns user
intents (first / previous / next / last / jump / play) into new
snapshots. The displayed FEN is always derived, never stored: on the
main line it is the replay of the main line up to the cursor, on a
branch it is the branch's cached position.

Boundary requests are clamped; they never raise.
"""

from __future__ import annotations

import logging

import chess

from chess_explainer import branch as branch_manager
from chess_explainer.models import (
    GameRecord,
    Move,
    NavigationState,
    OnBranch,
    OnMainLine,
    TemporaryBranch,
)
from chess_explainer.position import compute_position
from chess_explainer.rules import make_move, parse_move_text

_log = logging.getLogger(__name__)


class Navigator:
    """Cursor + branch state machine over one loaded game."""

    def __init__(self, game: GameRecord | None = None) -> None:
        self._state = NavigationState(game=game or GameRecord())

    # -- Read-only view ---------------------------------------------------

    @property
    def state(self) -> NavigationState:
        return self._state

    @property
    def game(self) -> GameRecord:
        return self._state.game

    @property
    def index(self) -> int:
        return self._state.index

    @property
    def branch(self) -> TemporaryBranch | None:
        return self._state.branch

    @property
    def on_branch(self) -> bool:
        return isinstance(self._state.cursor, OnBranch)

    @property
    def fen(self) -> str:
        """FEN of the displayed position."""
        return displayed_fen(self._state)

    @property
    def can_go_back(self) -> bool:
        return self.index > -1

    @property
    def can_go_forward(self) -> bool:
        return not self.on_branch and self.index < self.game.tip

    # -- Loading ----------------------------------------------------------

    def load(self, game: GameRecord) -> NavigationState:
        """Replace the game; the cursor starts at the starting position."""
        self._state = NavigationState(game=game, cursor=OnMainLine(-1))
        _log.info("Loaded game with %d moves", len(game.moves))
        return self._state

    def new_game(self, starting_fen: str = chess.STARTING_FEN) -> NavigationState:
        """Start an empty game from starting_fen.

        Raises:
            ValueError: If the FEN is invalid.
        """
        board = chess.Board(starting_fen)
        if not board.is_valid():
            raise ValueError(f"Invalid FEN position: {starting_fen}")
        return self.load(GameRecord(starting_fen=board.fen()))

    # -- Navigation intents -----------------------------------------------

    def first(self) -> NavigationState:
        self._state = NavigationState(game=self.game, cursor=OnMainLine(-1))
        return self._state

    def previous(self) -> NavigationState:
        """Step back; leaving a branch falls back to its divergence point."""
        if self.on_branch:
            self._state = branch_manager.clear_branch(self._state)
        else:
            self._state = NavigationState(
                game=self.game, cursor=OnMainLine(max(-1, self.index - 1))
            )
        return self._state

    def next(self) -> NavigationState:
        """Step forward along the main line; a no-op at the tip or on a branch."""
        if self.can_go_forward:
            self._state = NavigationState(game=self.game, cursor=OnMainLine(self.index + 1))
        return self._state

    def last(self) -> NavigationState:
        self._state = NavigationState(game=self.game, cursor=OnMainLine(self.game.tip))
        return self._state

    def jump(self, index: int) -> NavigationState:
        """Show main-line move `index` (clamped), abandoning any branch."""
        target = max(-1, min(index, self.game.tip))
        if target != index:
            _log.debug("Clamped jump target %d to %d", index, target)
        self._state = NavigationState(game=self.game, cursor=OnMainLine(target))
        return self._state

    # -- Moves --------------------------------------------------------------

    def play(self, from_square: str, to_square: str, promotion: str | None = None) -> Move:
        """Play a move from the displayed position.

        At the main-line tip the move extends the game; anywhere else it
        opens or extends the temporary branch.

        Raises:
            IllegalMoveError: If the rules engine rejects the move. State
                is left unchanged.
        """
        move, fen = make_move(self.fen, from_square, to_square, promotion)
        self._state = branch_manager.apply_move(self._state, move, fen)
        return move

    def play_text(self, text: str) -> Move:
        """Play a move typed as SAN or UCI."""
        from_square, to_square, promotion = parse_move_text(self.fen, text)
        return self.play(from_square, to_square, promotion)

    def set_branch(self, branch: TemporaryBranch | None) -> NavigationState:
        self._state = branch_manager.set_branch(self._state, branch)
        return self._state

    def clear_branch(self) -> NavigationState:
        self._state = branch_manager.clear_branch(self._state)
        return self._state


def displayed_fen(state: NavigationState) -> str:
    """FEN shown for a navigation snapshot."""
    if isinstance(state.cursor, OnBranch):
        return state.cursor.branch.fen
    game = state.game
    return compute_position(game.moves, state.cursor.index, game.starting_fen)
