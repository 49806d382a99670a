"""Temporary-branch management.

A move played from a historical position never overwrites the recorded
continuation: it opens a temporary branch instead. At most one branch is
live; it is extended by further moves and dropped when navigation
returns to the main line.

Decision table for apply_move():

    no branch, cursor at main-line tip     -> append to main line
    no branch, cursor behind the tip       -> open branch at cursor index
    branch active                          -> extend branch
"""

from __future__ import annotations

from dataclasses import replace

from chess_explainer.models import (
    Move,
    NavigationState,
    OnBranch,
    OnMainLine,
    TemporaryBranch,
)


def apply_move(state: NavigationState, move: Move, fen: str) -> NavigationState:
    """Record a move made from the displayed position.

    Args:
        state: Current navigation snapshot.
        move: The move, already validated by the rules engine.
        fen: Position after the move.

    Returns:
        New snapshot with the cursor on whichever sequence was extended.
    """
    branch = state.branch
    if branch is not None:
        extended = replace(branch, moves=branch.moves + (move,), fen=fen)
        return replace(state, cursor=OnBranch(extended))

    game = state.game
    if state.index >= game.tip:
        appended = replace(game, moves=game.moves + (move,))
        return NavigationState(game=appended, cursor=OnMainLine(appended.tip))

    opened = TemporaryBranch(base_index=state.index, moves=(move,), fen=fen)
    return replace(state, cursor=OnBranch(opened))


def set_branch(state: NavigationState, branch: TemporaryBranch | None) -> NavigationState:
    """Replace the live branch (None clears it).

    Raises:
        ValueError: If the branch has no moves, or its base is not a
            main-line index behind the tip.
    """
    if branch is None:
        return clear_branch(state)
    if not branch.moves:
        raise ValueError("Branch must contain at least one move")
    if not -1 <= branch.base_index < state.game.tip:
        raise ValueError(
            f"Branch base index {branch.base_index} outside main line "
            f"[-1, {state.game.tip - 1}]"
        )
    return replace(state, cursor=OnBranch(branch))


def clear_branch(state: NavigationState) -> NavigationState:
    """Drop the live branch, returning the cursor to its divergence point."""
    branch = state.branch
    if branch is None:
        return state
    return replace(state, cursor=OnMainLine(branch.base_index))
