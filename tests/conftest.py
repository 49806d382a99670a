"""Shared test fixtures with dual-mode support (mocked vs real Stockfish).

Usage:
    pytest tests/                  # Fast, mocked engine (no Stockfish)
    pytest tests/ --e2e            # Real Stockfish for integration tests

Fixtures:
    mock_chess_engine  - Patches ChessEngine with a mock returning legal lines.
                         Yields None when --e2e is passed.
    clean_data_dir     - Backs up and restores data/current_view.json.
    enable_validation  - Sets CHESS_EXPLAINER_VALIDATE=1 for schema validation.
    sample_pgn         - A short complete game.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import chess
import pytest

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT))

from chess_explainer.models import EngineLine  # noqa: E402

_DATA_DIR = _PROJECT_ROOT / "data"

SAMPLE_PGN = """[Event "Casual game"]
[Site "London"]
[Date "1851.??.??"]
[White "Anderssen"]
[Black "Kieseritzky"]
[Result "1-0"]

1. e4 e5 2. f4 exf4 3. Bc4 Qh4+ 4. Kf1 b5 5. Bxb5 Nf6 1-0
"""


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for real Stockfish tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run with real Stockfish engine (no mocks).",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires real Stockfish)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip e2e-marked tests unless --e2e is given."""
    if config.getoption("--e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="needs --e2e (real Stockfish)")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# ---------------------------------------------------------------------------
# Mock chess engine fixture
# ---------------------------------------------------------------------------


def make_mock_engine():
    """Create a mock ChessEngine that returns lines of legal moves."""
    mock = MagicMock()

    def _analyze_position(fen: str, depth: int | None = None, multipv: int | None = None):
        """Return realistic analysis lines: legal moves in generation order."""
        board = chess.Board(fen)
        legal = list(board.legal_moves)
        lines = []
        for i in range(min(multipv or 3, len(legal))):
            move = legal[i]
            san = board.san(move)
            lines.append(
                EngineLine(
                    score_type="cp",
                    value=30 - i * 15,
                    best_move=move.uci(),
                    best_move_san=san,
                    line=[san],
                    depth=depth or 15,
                    rank=i + 1,
                )
            )
        return lines

    def _evaluate(fen: str, depth: int | None = None) -> float:
        """Material balance in pawns, White's point of view."""
        board = chess.Board(fen)
        values = {chess.PAWN: 1, chess.KNIGHT: 3, chess.BISHOP: 3, chess.ROOK: 5, chess.QUEEN: 9}
        score = 0
        for piece_type, value in values.items():
            score += value * len(board.pieces(piece_type, chess.WHITE))
            score -= value * len(board.pieces(piece_type, chess.BLACK))
        return float(score)

    mock.analyze_position = MagicMock(side_effect=_analyze_position)
    mock.evaluate = MagicMock(side_effect=_evaluate)
    mock.close = MagicMock()

    return mock


@pytest.fixture()
def mock_chess_engine(request):
    """Patch ChessEngine with a mock engine.

    Yields None when --e2e is passed (real Stockfish is used instead).
    The server resolves ChessEngine through the chess_explainer.engine
    module at call time, so patching the module attribute is enough.
    """
    if request.config.getoption("--e2e"):
        yield None
        return

    with patch(
        "chess_explainer.engine.ChessEngine",
        side_effect=lambda *args, **kwargs: make_mock_engine(),
    ) as factory:
        yield factory


@pytest.fixture()
def sample_pgn() -> str:
    return SAMPLE_PGN


# ---------------------------------------------------------------------------
# Clean data directory fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_data_dir():
    """Back up and restore data/current_view.json around each test."""
    view_path = _DATA_DIR / "current_view.json"

    original = None
    if view_path.exists():
        original = view_path.read_text(encoding="utf-8")

    yield

    if original is not None:
        view_path.write_text(original, encoding="utf-8")
    elif view_path.exists():
        view_path.unlink()


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set CHESS_EXPLAINER_VALIDATE=1 for the test.

    Restores the original env var value after the test.
    """
    original = os.environ.get("CHESS_EXPLAINER_VALIDATE")
    os.environ["CHESS_EXPLAINER_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("CHESS_EXPLAINER_VALIDATE", None)
    else:
        os.environ["CHESS_EXPLAINER_VALIDATE"] = original
