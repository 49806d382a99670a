"""Tests for temporary-branch creation, extension and collapse."""

from __future__ import annotations

import chess
import pytest

from chess_explainer import branch as branch_manager
from chess_explainer.models import (
    GameRecord,
    NavigationState,
    OnBranch,
    OnMainLine,
    TemporaryBranch,
)
from chess_explainer.position import compute_position
from chess_explainer.rules import make_move, parse_move_text


def _game(*sans: str) -> GameRecord:
    fen = chess.STARTING_FEN
    moves = []
    for san in sans:
        move, fen = make_move(fen, *parse_move_text(fen, san))
        moves.append(move)
    return GameRecord(moves=tuple(moves))


def _play(state: NavigationState, san: str) -> NavigationState:
    fen = state.branch.fen if state.branch else compute_position(
        state.game.moves, state.index, state.game.starting_fen
    )
    move, new_fen = make_move(fen, *parse_move_text(fen, san))
    return branch_manager.apply_move(state, move, new_fen)


FIVE = ("e4", "e5", "Nf3", "Nc6", "Bb5")


class TestApplyMove:
    def test_move_at_tip_extends_main_line(self):
        game = _game("e4", "e5")
        state = NavigationState(game=game, cursor=OnMainLine(1))
        state = _play(state, "Nf3")

        assert len(state.game.moves) == 3
        assert state.cursor == OnMainLine(2)
        assert state.branch is None

    def test_move_on_empty_game_extends_main_line(self):
        state = _play(NavigationState(), "d4")
        assert [m.san for m in state.game.moves] == ["d4"]
        assert state.index == 0

    def test_move_behind_tip_opens_branch(self):
        game = _game(*FIVE)
        state = _play(NavigationState(game=game, cursor=OnMainLine(2)), "d6")

        assert isinstance(state.cursor, OnBranch)
        assert state.branch.base_index == 2
        assert [m.san for m in state.branch.moves] == ["d6"]
        # Recorded game untouched
        assert state.game is game
        assert len(state.game.moves) == 5

    def test_branch_fen_is_position_after_branch_move(self):
        game = _game(*FIVE)
        state = _play(NavigationState(game=game, cursor=OnMainLine(2)), "d6")

        board = chess.Board(compute_position(game.moves, 2))
        board.push_san("d6")
        assert state.branch.fen == board.fen()

    def test_branch_index_does_not_collide_with_main_line(self):
        game = _game(*FIVE)
        state = _play(NavigationState(game=game, cursor=OnMainLine(2)), "d6")

        # Branch addressing: base + 1, but the shown position is the branch's
        assert state.index == 3
        assert state.branch.fen != compute_position(game.moves, 3)

    def test_further_moves_extend_branch(self):
        game = _game(*FIVE)
        state = _play(NavigationState(game=game, cursor=OnMainLine(2)), "d6")
        state = _play(state, "d4")
        state = _play(state, "exd4")

        assert state.branch.base_index == 2
        assert [m.san for m in state.branch.moves] == ["d6", "d4", "exd4"]
        assert len(state.game.moves) == 5

    def test_branch_from_start_position(self):
        game = _game(*FIVE)
        state = _play(NavigationState(game=game, cursor=OnMainLine(-1)), "d4")

        assert state.branch.base_index == -1
        assert state.index == 0
        assert len(state.game.moves) == 5


class TestSetAndClear:
    def test_clear_returns_to_base(self):
        game = _game(*FIVE)
        state = _play(NavigationState(game=game, cursor=OnMainLine(2)), "d6")
        cleared = branch_manager.clear_branch(state)

        assert cleared.cursor == OnMainLine(2)
        assert cleared.branch is None
        assert cleared.game is game

    def test_clear_without_branch_is_noop(self):
        state = NavigationState(game=_game("e4"), cursor=OnMainLine(0))
        assert branch_manager.clear_branch(state) is state

    def test_set_branch(self):
        game = _game(*FIVE)
        move, fen = make_move(chess.STARTING_FEN, "d2", "d4")
        branch = TemporaryBranch(base_index=-1, moves=(move,), fen=fen)
        state = branch_manager.set_branch(NavigationState(game=game), branch)
        assert state.branch == branch
        assert state.index == 0

    def test_set_none_clears(self):
        game = _game(*FIVE)
        state = _play(NavigationState(game=game, cursor=OnMainLine(1)), "Nc3")
        state = branch_manager.set_branch(state, None)
        assert state.cursor == OnMainLine(1)

    # A branch based at the tip would be a main-line extension
    @pytest.mark.parametrize("base", [-2, 4, 5])
    def test_set_branch_rejects_base_outside_main_line(self, base):
        game = _game(*FIVE)
        move, fen = make_move(chess.STARTING_FEN, "d2", "d4")
        branch = TemporaryBranch(base_index=base, moves=(move,), fen=fen)
        with pytest.raises(ValueError, match="outside main line"):
            branch_manager.set_branch(NavigationState(game=game), branch)

    def test_set_branch_rejects_empty_branch(self):
        game = _game(*FIVE)
        branch = TemporaryBranch(base_index=0, moves=(), fen=chess.STARTING_FEN)
        with pytest.raises(ValueError, match="at least one move"):
            branch_manager.set_branch(NavigationState(game=game), branch)
