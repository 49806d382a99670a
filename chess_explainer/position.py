"""Position reconstruction by replaying the main line.

Moves are replayed by origin/destination/promotion, never by SAN, so
histories produced by the PGN importer and by live play reconstruct the
same way. A stored move that the rules engine rejects is logged and
skipped; replay continues from the last good position.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import chess

from chess_explainer.models import Move

_log = logging.getLogger(__name__)


def _apply(board: chess.Board, move: Move, ply: int) -> None:
    try:
        candidate = chess.Move.from_uci(move.uci)
    except ValueError:
        _log.warning("Skipping malformed move %r at index %d", move.uci, ply)
        return
    if not board.is_legal(candidate):
        _log.warning(
            "Skipping move %s (%s) at index %d: illegal in %s",
            move.san, move.uci, ply, board.fen(),
        )
        return
    board.push(candidate)


def compute_position(
    moves: Sequence[Move],
    index: int,
    starting_fen: str = chess.STARTING_FEN,
) -> str:
    """FEN after main-line move `index` (-1 is the starting position).

    Args:
        moves: Main-line moves.
        index: Target index in [-1, len(moves) - 1]. Callers clamp.
        starting_fen: Position the sequence starts from.

    Returns:
        FEN of the reconstructed position.
    """
    board = chess.Board(starting_fen)
    for ply in range(index + 1):
        _apply(board, moves[ply], ply)
    return board.fen()


def positions(moves: Sequence[Move], starting_fen: str = chess.STARTING_FEN) -> list[str]:
    """Every FEN from the starting position through the tip.

    Entry 0 is the start; entry i + 1 is the position after move i.
    Uses the same skip-on-failure policy as compute_position().
    """
    board = chess.Board(starting_fen)
    fens = [board.fen()]
    for ply, move in enumerate(moves):
        _apply(board, move, ply)
        fens.append(board.fen())
    return fens
