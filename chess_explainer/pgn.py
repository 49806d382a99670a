"""PGN import and export.

parse_pgn() turns pasted or downloaded PGN text into a GameRecord;
export_pgn() writes a GameRecord (optionally with the active temporary
branch as a variation) back to PGN text.
"""

from __future__ import annotations

import io
import re

import chess
import chess.pgn

from chess_explainer.models import GameMetadata, GameRecord, Move, TemporaryBranch
from chess_explainer.rules import describe_move

_TAG_RE = re.compile(r'^\s*\[\s*[A-Za-z0-9_]+\s+"[^"]*"\s*\]\s*$', re.MULTILINE)
_MOVETEXT_RE = re.compile(r"\b\d+\s*\.|\b[KQRBN]?[a-h]?[1-8]?x?[a-h][1-8]|O-O", re.MULTILINE)

# Header values python-chess uses for "unknown"
_UNKNOWN_VALUES = {"?", "????.??.??", ""}

_ROSTER_FIELDS = {
    "Event": "event",
    "Site": "site",
    "Date": "date",
    "Round": "round",
    "White": "white",
    "Black": "black",
    "Result": "result",
}


class PgnParseError(ValueError):
    """Raised when PGN text cannot be turned into a game."""


def _metadata_from_headers(headers: chess.pgn.Headers) -> GameMetadata:
    values: dict = {}
    extra: dict = {}
    for key, value in headers.items():
        if key in _ROSTER_FIELDS:
            values[_ROSTER_FIELDS[key]] = None if value in _UNKNOWN_VALUES else value
        elif key not in ("FEN", "SetUp"):
            extra[key] = value
    return GameMetadata(extra=extra, **values)


def parse_pgn(text: str) -> GameRecord:
    """Parse PGN text into a GameRecord.

    Args:
        text: PGN text with tags and/or movetext.

    Returns:
        GameRecord with the main line, starting FEN, metadata and the
        original PGN text.

    Raises:
        PgnParseError: If the text has neither tags nor movetext, or the
            movetext contains an illegal or unparseable move.
    """
    if not text or not text.strip():
        raise PgnParseError("PGN is empty")

    if not _TAG_RE.search(text) and not _MOVETEXT_RE.search(text):
        raise PgnParseError("PGN has no recognisable tags or moves section")

    game = chess.pgn.read_game(io.StringIO(text))
    if game is None:
        raise PgnParseError("No game found in PGN")
    if game.errors:
        raise PgnParseError(f"Invalid PGN: {game.errors[0]}")

    board = game.board()
    starting_fen = board.fen()
    moves: list[Move] = []
    for move in game.mainline_moves():
        moves.append(describe_move(board, move))
        board.push(move)

    return GameRecord(
        moves=tuple(moves),
        starting_fen=starting_fen,
        metadata=_metadata_from_headers(game.headers),
        pgn=text,
    )


def export_pgn(record: GameRecord, branch: TemporaryBranch | None = None) -> str:
    """Write a game to PGN text.

    Moves are replayed by UCI so the export never depends on how the
    stored SAN was disambiguated.

    Args:
        record: Game to export.
        branch: Optional temporary branch, written as a variation after
            its base move.

    Returns:
        PGN string.
    """
    pgn_game = chess.pgn.Game()
    if record.starting_fen != chess.STARTING_FEN:
        pgn_game.setup(chess.Board(record.starting_fen))

    meta = record.metadata
    for tag, attr in _ROSTER_FIELDS.items():
        value = getattr(meta, attr)
        if value:
            pgn_game.headers[tag] = value
    for tag, value in meta.extra.items():
        pgn_game.headers[tag] = value

    nodes: list[chess.pgn.GameNode] = [pgn_game]
    node: chess.pgn.GameNode = pgn_game
    for move in record.moves:
        node = node.add_variation(chess.Move.from_uci(move.uci))
        nodes.append(node)

    if branch is not None and branch.moves:
        # nodes[0] is the root, so base index i hangs off nodes[i + 1]
        node = nodes[branch.base_index + 1]
        for move in branch.moves:
            node = node.add_variation(chess.Move.from_uci(move.uci))

    return str(pgn_game)
