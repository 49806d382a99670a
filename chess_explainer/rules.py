"""Rules-engine adapter over python-chess.

The navigation core never decides legality itself: every move, whether
played on the board, typed as SAN/UCI, or replayed from history, goes
through make_move() and comes back as an immutable Move plus the
resulting FEN.
"""

from __future__ import annotations

import chess

from chess_explainer.models import Move

_PROMOTION_LETTERS = {"q": chess.QUEEN, "r": chess.ROOK, "b": chess.BISHOP, "n": chess.KNIGHT}


class IllegalMoveError(ValueError):
    """Raised when the rules engine rejects a candidate move."""


def _square(name: str) -> int:
    try:
        return chess.parse_square(name.strip().lower())
    except (ValueError, AttributeError):
        raise IllegalMoveError(f"Invalid square: {name!r}") from None


def _flags(board: chess.Board, move: chess.Move) -> str:
    """chess.js-style flag letters for a legal move on board."""
    if board.is_kingside_castling(move):
        return "k"
    if board.is_queenside_castling(move):
        return "q"
    flags = ""
    if board.is_en_passant(move):
        flags += "e"
    elif board.is_capture(move):
        flags += "c"
    piece = board.piece_at(move.from_square)
    if (
        piece is not None
        and piece.piece_type == chess.PAWN
        and abs(chess.square_rank(move.to_square) - chess.square_rank(move.from_square)) == 2
    ):
        flags += "b"
    if move.promotion is not None:
        flags += "p"
    return flags or "n"


def describe_move(board: chess.Board, move: chess.Move) -> Move:
    """Build a Move record for a legal move, before it is pushed.

    Args:
        board: Position the move is played from (not modified).
        move: A legal move in that position.

    Returns:
        Move with SAN, moving piece, captured piece and flags filled in.
    """
    piece = board.piece_at(move.from_square)
    captured = None
    if board.is_en_passant(move):
        captured = "p"
    elif board.is_capture(move):
        captured_piece = board.piece_at(move.to_square)
        if captured_piece is not None:
            captured = chess.piece_symbol(captured_piece.piece_type)

    return Move(
        color="white" if board.turn == chess.WHITE else "black",
        piece=chess.piece_symbol(piece.piece_type) if piece is not None else "?",
        from_square=chess.square_name(move.from_square),
        to_square=chess.square_name(move.to_square),
        san=board.san(move),
        promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
        captured=captured,
        flags=_flags(board, move),
    )


def make_move(
    fen: str,
    from_square: str,
    to_square: str,
    promotion: str | None = None,
) -> tuple[Move, str]:
    """Apply a move given by origin/destination to a position.

    Args:
        fen: Position to play from.
        from_square: Origin square name, e.g. 'e2'.
        to_square: Destination square name, e.g. 'e4'.
        promotion: Optional promotion letter (q, r, b, n).

    Returns:
        Tuple of (Move record, FEN after the move).

    Raises:
        IllegalMoveError: If the squares or promotion are malformed or
            the move is not legal in the position.
        ValueError: If the FEN itself is invalid.
    """
    board = chess.Board(fen)

    promotion_type = None
    if promotion:
        promotion_type = _PROMOTION_LETTERS.get(promotion.strip().lower())
        if promotion_type is None:
            raise IllegalMoveError(f"Invalid promotion piece: {promotion!r}")

    move = chess.Move(_square(from_square), _square(to_square), promotion=promotion_type)
    if not board.is_legal(move):
        raise IllegalMoveError(
            f"Illegal move {from_square}{to_square}{promotion or ''} in position {fen}"
        )

    record = describe_move(board, move)
    board.push(move)
    return record, board.fen()


def parse_move_text(fen: str, text: str) -> tuple[str, str, str | None]:
    """Resolve a typed move (SAN first, then UCI) into origin/destination.

    Args:
        fen: Position the move is typed in.
        text: Move such as 'Nf3', 'O-O', 'e2e4' or 'e7e8q'.

    Returns:
        Tuple of (from_square, to_square, promotion letter or None).

    Raises:
        IllegalMoveError: If the text is neither legal SAN nor legal UCI.
    """
    board = chess.Board(fen)
    text = text.strip()
    try:
        move = board.parse_san(text)
    except ValueError:
        try:
            move = chess.Move.from_uci(text.lower())
        except ValueError:
            raise IllegalMoveError(f"Unparseable move: {text!r}") from None
        if not board.is_legal(move):
            raise IllegalMoveError(f"Illegal move: {text}") from None

    promotion = chess.piece_symbol(move.promotion) if move.promotion else None
    return chess.square_name(move.from_square), chess.square_name(move.to_square), promotion


def legal_moves_san(fen: str) -> list[str]:
    """All legal moves of a position in SAN."""
    board = chess.Board(fen)
    return [board.san(m) for m in board.legal_moves]
