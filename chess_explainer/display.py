"""Move-list and status formatting.

Everything here is display-only: pairing moves into numbered rows,
grouping the temporary branch as a variation, and the one-line cursor
status. None of it feeds back into cursor arithmetic. build_view()
bundles all of it into one JSON-ready snapshot.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field, replace

import chess

from chess_explainer.models import EngineEvaluation, Move, NavigationState, TemporaryBranch
from chess_explainer.navigation import displayed_fen


@dataclass(frozen=True)
class MovePair:
    """One numbered row of the move list."""

    number: int
    white: str | None = None
    black: str | None = None
    white_index: int | None = None
    black_index: int | None = None


@dataclass(frozen=True)
class MoveListing:
    """Main-line rows plus the rows of the active variation, if any."""

    main: list[MovePair] = field(default_factory=list)
    variation: list[MovePair] = field(default_factory=list)
    base_index: int | None = None


def ply_offset(starting_fen: str = chess.STARTING_FEN) -> int:
    """Half-moves played before the starting position, from its FEN counters."""
    board = chess.Board(starting_fen)
    return (board.fullmove_number - 1) * 2 + (0 if board.turn == chess.WHITE else 1)


def pair_moves(
    moves: Sequence[Move],
    first_ply: int = 0,
    indexed: bool = True,
) -> list[MovePair]:
    """Group moves into numbered White/Black rows.

    Args:
        moves: Moves in play order.
        first_ply: Ply of the first move (0 = White's first move).
        indexed: Whether to record main-line indices on each row.

    Returns:
        Rows in order; a row may lack its White or Black half.
    """
    pairs: list[MovePair] = []
    for i, move in enumerate(moves):
        ply = first_ply + i
        number = ply // 2 + 1
        index = i if indexed else None
        if ply % 2 == 0:
            pairs.append(MovePair(number=number, white=move.san, white_index=index))
        elif pairs and pairs[-1].number == number:
            pairs[-1] = replace(pairs[-1], black=move.san, black_index=index)
        else:
            pairs.append(MovePair(number=number, black=move.san, black_index=index))
    return pairs


def pair_with_branch(
    moves: Sequence[Move],
    branch: TemporaryBranch | None,
    first_ply: int = 0,
) -> MoveListing:
    """Move list with the active branch shown as a separate variation.

    The main line is truncated at the branch base. When the branch opens
    with a Black move, its first row borrows the main line's White move
    so the variation reads as a complete numbered pair.
    """
    if branch is None:
        return MoveListing(main=pair_moves(moves, first_ply))

    base = branch.base_index
    main = pair_moves(moves[: base + 1], first_ply)
    start_ply = first_ply + base + 1
    variation = pair_moves(branch.moves, start_ply, indexed=False)
    if variation and start_ply % 2 == 1 and base >= 0:
        variation[0] = replace(variation[0], white=moves[base].san, white_index=base)
    return MoveListing(main=main, variation=variation, base_index=base)


def describe_cursor(moves: Sequence[Move], index: int, first_ply: int = 0) -> str:
    """One-line status such as 'Move 2 (Black to move) of 20'.

    Derived from the main-line index only; the branch does not change it.
    """
    ply = first_ply + index + 1
    number = ply // 2 + 1
    side = "White" if ply % 2 == 0 else "Black"
    total = math.ceil((first_ply + len(moves)) / 2)
    return f"Move {number} ({side} to move) of {total}"


def format_pgn_moves(sans: Sequence[str], first_ply: int = 0) -> str:
    """Compact movetext, e.g. ['e4', 'e5', 'Nf3'] -> '1.e4 e5 2.Nf3'."""
    parts: list[str] = []
    for i, san in enumerate(sans):
        ply = first_ply + i
        number = ply // 2 + 1
        if ply % 2 == 0:
            parts.append(f"{number}.{san}")
        elif i == 0:
            parts.append(f"{number}...{san}")
        else:
            parts.append(san)
    return " ".join(parts)


def recent_moves(
    moves: Sequence[Move],
    index: int,
    count: int = 5,
    first_ply: int = 0,
) -> str:
    """Numbered movetext of the last `count` moves up to and including index.

    Returns an empty string at the starting position.
    """
    if index < 0 or not moves:
        return ""
    end = min(index, len(moves) - 1) + 1
    start = max(0, end - count)
    return format_pgn_moves([m.san for m in moves[start:end]], first_ply + start)


def _rows(pairs: list[MovePair]) -> list[dict]:
    return [asdict(p) for p in pairs]


def build_view(state: NavigationState, evaluation: EngineEvaluation | None = None) -> dict:
    """Plain-dict snapshot of everything the viewer shows.

    Used both as the tool-surface response (after minification) and as
    the file the terminal viewer watches.

    Args:
        state: Navigation snapshot to render.
        evaluation: Latest engine result; dropped unless it belongs to
            the displayed position.

    Returns:
        JSON-serialisable dict.
    """
    game = state.game
    first_ply = ply_offset(game.starting_fen)
    fen = displayed_fen(state)
    branch = state.branch
    listing = pair_with_branch(game.moves, branch, first_ply)

    if branch is not None:
        last_move = branch.moves[-1] if branch.moves else None
    elif state.index >= 0:
        last_move = game.moves[state.index]
    else:
        last_move = None

    variation = None
    if branch is not None:
        start_ply = first_ply + branch.base_index + 1
        variation = {
            "base_index": branch.base_index,
            "moves": [m.san for m in branch.moves],
            "text": format_pgn_moves([m.san for m in branch.moves], start_ply),
        }

    eval_view = None
    if evaluation is not None and evaluation.fen == fen and evaluation.best is not None:
        best = evaluation.best
        eval_view = {
            "score": best.describe(),
            "score_type": best.score_type,
            "value": best.value,
            "best_move": best.best_move_san,
            "line": list(best.line),
            "depth": best.depth,
        }

    board = chess.Board(fen)
    meta = game.metadata
    return {
        "fen": fen,
        "starting_fen": game.starting_fen,
        "first_ply": first_ply,
        "index": state.index,
        "tip": game.tip,
        "on_branch": branch is not None,
        "can_go_back": state.index > -1,
        "can_go_forward": branch is None and state.index < game.tip,
        "status": describe_cursor(game.moves, state.index, first_ply),
        "moves": [m.san for m in game.moves],
        "variation": variation,
        "rows": _rows(listing.main),
        "variation_rows": _rows(listing.variation),
        "last_move": last_move.uci if last_move else None,
        "last_move_san": last_move.san if last_move else None,
        "turn": "white" if board.turn == chess.WHITE else "black",
        "legal_moves": [board.san(m) for m in board.legal_moves],
        "is_game_over": board.is_game_over(),
        "white": meta.white,
        "black": meta.black,
        "result": meta.result,
        "event": meta.event,
        "date": meta.date,
        "evaluation": eval_view,
    }
