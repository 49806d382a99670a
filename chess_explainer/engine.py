"""Stockfish analysis client for Chess Explainer.

Wraps Stockfish via the python-chess UCI interface. Provides:
- Multi-PV position analysis returning structured EngineLine records
- Single-score evaluation for whole-game evaluation graphs
- Crash recovery (one restart on EngineTerminatedError)
- CLI for quick analysis of a FEN

The client is an ordinary object: whoever needs analysis constructs
one (or is handed one) and closes it when done.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path

import chess
import chess.engine

from chess_explainer.config import DEFAULT_DEPTH, DEFAULT_MULTIPV
from chess_explainer.models import EngineLine

_log = logging.getLogger(__name__)

# Stockfish search paths in priority order
_STOCKFISH_PATHS = [
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/bin/stockfish",
    "/usr/games/stockfish",
]

_MATE_SCORE = 10000


def _find_stockfish() -> str:
    """Auto-detect Stockfish binary path.

    Checks known install paths, then falls back to PATH lookup.

    Returns:
        Path to Stockfish binary.

    Raises:
        FileNotFoundError: If Stockfish is not found anywhere.
    """
    for path_str in _STOCKFISH_PATHS:
        if Path(path_str).is_file():
            return path_str

    which_result = shutil.which("stockfish")
    if which_result is not None:
        return which_result

    raise FileNotFoundError(
        "Stockfish not found. Install it or set STOCKFISH_PATH."
    )


def _pv_to_san(board: chess.Board, pv: list[chess.Move]) -> list[str]:
    """Convert a principal variation to SAN without touching board."""
    san_moves: list[str] = []
    temp_board = board.copy()
    for move in pv:
        if not temp_board.is_legal(move):
            break
        san_moves.append(temp_board.san(move))
        temp_board.push(move)
    return san_moves


def _line_from_info(board: chess.Board, info: dict, rank: int, depth: int) -> EngineLine:
    """Turn one python-chess InfoDict into an EngineLine (White's point of view)."""
    score = info["score"].white()
    if score.is_mate():
        score_type, value = "mate", score.mate()
    else:
        score_type, value = "cp", score.score()

    pv = info.get("pv", [])
    san_line = _pv_to_san(board, pv)
    best_move = pv[0].uci() if pv else ""
    best_move_san = san_line[0] if san_line else ""

    return EngineLine(
        score_type=score_type,
        value=value,
        best_move=best_move,
        best_move_san=best_move_san,
        line=san_line,
        depth=info.get("depth", depth),
        rank=rank,
    )


class ChessEngine:
    """Stockfish wrapper for position analysis."""

    def __init__(
        self,
        stockfish_path: str | None = None,
        depth: int = DEFAULT_DEPTH,
        multipv: int = DEFAULT_MULTIPV,
    ) -> None:
        """Initialize engine with Stockfish.

        Args:
            stockfish_path: Explicit path to Stockfish binary.
                If None, auto-detects from known locations.
            depth: Default analysis depth.
            multipv: Default number of principal variations.

        Raises:
            FileNotFoundError: If Stockfish is not found.
        """
        self._stockfish_path = stockfish_path or _find_stockfish()
        self._depth = depth
        self._multipv = multipv
        self._engine = self._open_engine()

    def _open_engine(self) -> chess.engine.SimpleEngine:
        """Open a fresh Stockfish process.

        Returns:
            New SimpleEngine instance.
        """
        return chess.engine.SimpleEngine.popen_uci(self._stockfish_path)

    def _ensure_engine(self) -> None:
        """Ensure engine process is alive, restart once if terminated."""
        try:
            self._engine.ping()
        except chess.engine.EngineTerminatedError:
            _log.warning("Stockfish process terminated; restarting")
            self._engine = self._open_engine()

    def analyze_position(
        self,
        fen: str,
        depth: int | None = None,
        multipv: int | None = None,
    ) -> list[EngineLine]:
        """Full-strength multi-PV analysis of a position.

        Args:
            fen: Position to analyze.
            depth: Analysis depth (defaults to the engine's configured depth).
            multipv: Number of principal variations (defaults likewise).

        Returns:
            EngineLine per variation, best first.

        Raises:
            ValueError: If the FEN is invalid.
        """
        board = chess.Board(fen)
        depth = depth or self._depth
        multipv = multipv or self._multipv
        self._ensure_engine()

        try:
            return self._analyze_position_inner(board, depth, multipv)
        except chess.engine.EngineTerminatedError:
            _log.warning("Stockfish died during analysis; retrying once")
            self._engine = self._open_engine()
            return self._analyze_position_inner(board, depth, multipv)

    def _analyze_position_inner(
        self,
        board: chess.Board,
        depth: int,
        multipv: int,
    ) -> list[EngineLine]:
        """Internal analysis without crash recovery."""
        infos = self._engine.analyse(
            board,
            chess.engine.Limit(depth=depth),
            multipv=multipv,
        )
        return [
            _line_from_info(board, info, rank, depth)
            for rank, info in enumerate(infos, 1)
        ]

    def evaluate(self, fen: str, depth: int | None = None) -> float:
        """Single evaluation in pawns from White's point of view.

        Mate scores are mapped to +/-100 pawns.
        """
        lines = self.analyze_position(fen, depth=depth, multipv=1)
        if not lines:
            return 0.0
        best = lines[0]
        if best.score_type == "mate":
            if best.value == 0:
                # Side to move is mated
                board = chess.Board(fen)
                return -_MATE_SCORE / 100.0 if board.turn == chess.WHITE else _MATE_SCORE / 100.0
            return _MATE_SCORE / 100.0 if best.value > 0 else -_MATE_SCORE / 100.0
        return best.value / 100.0

    def close(self) -> None:
        """Clean up Stockfish process."""
        try:
            self._engine.quit()
        except chess.engine.EngineTerminatedError:
            pass


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def _cli_analyze(fen: str, depth: int, multipv: int) -> None:
    """Analyze a FEN position and print the top lines.

    Args:
        fen: FEN string of the position to analyze.
        depth: Search depth.
        multipv: Number of lines to print.
    """
    engine = ChessEngine()
    try:
        board = chess.Board(fen)
        results = engine.analyze_position(fen, depth=depth, multipv=multipv)

        print(f"Position: {fen}")
        print(f"Side to move: {'White' if board.turn else 'Black'}")
        print()

        for line in results:
            pv_str = " ".join(line.line[:6])
            print(f"  Line {line.rank}: {line.describe()}  {pv_str}")
    finally:
        engine.close()


def main() -> None:
    """CLI entry point for chess_explainer.engine."""
    parser = argparse.ArgumentParser(
        description="Stockfish analysis of a single position"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    analyze_parser = subparsers.add_parser("analyze", help="Analyze a FEN position")
    analyze_parser.add_argument("fen", type=str, help="FEN string to analyze")
    analyze_parser.add_argument("--depth", type=int, default=DEFAULT_DEPTH)
    analyze_parser.add_argument("--multipv", type=int, default=DEFAULT_MULTIPV)

    args = parser.parse_args()

    if args.command == "analyze":
        _cli_analyze(args.fen, args.depth, args.multipv)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
