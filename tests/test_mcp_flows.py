"""Multi-tool functional flow tests for MCP server.

Exercises realistic multi-tool sequences: reviewing an imported game
with what-if variations, analysis while navigating, coach chat across
positions, and response size regression.

Run:
    pytest tests/test_mcp_flows.py -v          # mocked
    pytest tests/test_mcp_flows.py -v --e2e     # real Stockfish
"""

from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import chess
import pytest

# Add project root so imports resolve
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT))

# Import server module from hyphenated directory via importlib
_server_path = _PROJECT_ROOT / "mcp-server" / "server.py"
_spec = importlib.util.spec_from_file_location("mcp_server_flows_test", _server_path)
_server = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(_server)

from chess_explainer.coach import ChessCoach  # noqa: E402
from chess_explainer.pgn import parse_pgn  # noqa: E402
from chess_explainer.position import compute_position  # noqa: E402

_DATA_DIR = _server._DATA_DIR
_sessions = _server._sessions

# Server tool functions
new_game = _server.new_game
load_pgn = _server.load_pgn
get_view = _server.get_view
navigate = _server.navigate
jump_to_move = _server.jump_to_move
play_move = _server.play_move
get_game_pgn = _server.get_game_pgn
analyze_position = _server.analyze_position
send_chat_message = _server.send_chat_message
get_chat = _server.get_chat

sys.path.insert(0, str(_PROJECT_ROOT / "mcp-server"))
from response_schemas import VIEW_SCHEMA, validate_response  # noqa: E402


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_tui_json() -> dict:
    """Read data/current_view.json."""
    return json.loads((_DATA_DIR / "current_view.json").read_text(encoding="utf-8"))


@pytest.fixture(autouse=True)
def _clean_server(clean_data_dir, mock_chess_engine):
    client = MagicMock()
    client.models.generate_content.return_value = MagicMock(text="Looks equal.")
    _sessions.clear()
    _server._engine = None
    _server._coach = ChessCoach(client=client)
    yield
    if _server._engine is not None:
        _server._engine.close()
    _sessions.clear()
    _server._engine = None
    _server._coach = None


# ---------------------------------------------------------------------------
# Game review with variations
# ---------------------------------------------------------------------------


class TestReviewFlow:
    """Load, step through, branch off, come back."""

    def test_full_review(self, sample_pgn):
        game = parse_pgn(sample_pgn)
        session_id = load_pgn(sample_pgn)["session_id"]

        # Step through the whole game; every position matches a replay
        for i in range(len(game.moves)):
            view = navigate(session_id, "next")
            assert view["index"] == i
            assert view["fen"] == compute_position(game.moves, i)
            assert not validate_response(view, VIEW_SCHEMA)

        # Go back to 3.Bc4 and try 3...Nf6 instead of Qh4+
        view = jump_to_move(session_id, 4)
        assert view["last_move_san"] == "Bc4"
        view = play_move(session_id, "Nf6")
        assert view["on_branch"] is True
        view = play_move(session_id, "Nc3")
        assert view["variation"]["moves"] == "3...Nf6 4.Nc3"

        # The recorded game is untouched
        assert view["tip"] == 9
        assert view["move_list"].startswith("1.e4 e5 2.f4 exf4 3.Bc4 Qh4+")

        # Previous collapses the variation back to 3.Bc4
        view = navigate(session_id, "previous")
        assert view["on_branch"] is False
        assert view["index"] == 4
        assert view["fen"] == compute_position(game.moves, 4)

        # The main line is still replayable past the old branch point
        view = navigate(session_id, "next")
        assert view["last_move_san"] == "Qh4+"

    def test_explore_new_game_then_branch(self):
        session_id = new_game()["session_id"]
        for move in ("d4", "d5", "c4"):
            view = play_move(session_id, move)
        assert view["tip"] == 2
        assert view["on_branch"] is False

        jump_to_move(session_id, 1)
        view = play_move(session_id, "Bf4")
        assert view["on_branch"] is True
        assert view["variation"]["base_index"] == 1

        pgn = get_game_pgn(session_id)["pgn"]
        assert "( 2. Bf4 )" in pgn

        view = jump_to_move(session_id, 2)
        assert view["on_branch"] is False
        assert view["last_move_san"] == "c4"

    def test_branch_from_start_position(self, sample_pgn):
        session_id = load_pgn(sample_pgn)["session_id"]
        view = play_move(session_id, "d4")
        assert view["on_branch"] is True
        assert view["variation"]["base_index"] == -1
        assert view["status"] == "Move 1 (Black to move) of 5"

        view = navigate(session_id, "previous")
        assert view["fen"] == chess.STARTING_FEN

    def test_tui_json_follows_every_step(self, sample_pgn):
        session_id = load_pgn(sample_pgn)["session_id"]
        jump_to_move(session_id, 2)
        play_move(session_id, "Nc6")
        tui = _read_tui_json()
        assert tui["on_branch"] is True
        assert tui["variation"]["moves"] == ["Nc6"]

        navigate(session_id, "first")
        tui = _read_tui_json()
        assert tui["index"] == -1
        assert tui["variation"] is None


# ---------------------------------------------------------------------------
# Analysis and chat while navigating
# ---------------------------------------------------------------------------


class TestAnalysisFlow:
    def test_analysis_follows_displayed_position(self, sample_pgn):
        session_id = load_pgn(sample_pgn)["session_id"]
        jump_to_move(session_id, 5)
        first = analyze_position(session_id)

        jump_to_move(session_id, 2)
        play_move(session_id, "d5")
        second = analyze_position(session_id)

        assert first["fen"] != second["fen"]
        assert get_view(session_id)["evaluation"] is not None

    def test_chat_across_positions(self, sample_pgn):
        session_id = load_pgn(sample_pgn)["session_id"]
        send_chat_message(session_id, "How does the game start?")
        navigate(session_id, "last")
        send_chat_message(session_id, "Who is winning now?")

        messages = get_chat(session_id)["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
        assert messages[2]["content"] == "Who is winning now?"

        contents = _server._coach._client.models.generate_content.call_args.kwargs["contents"]
        assert "5.Bxb5 Nf6" in contents[-1]["parts"][0]["text"]


# ---------------------------------------------------------------------------
# Response size regression
# ---------------------------------------------------------------------------


class TestResponseSizeRegression:
    """Prevent response size regressions with hard thresholds."""

    def test_view_response_size(self, sample_pgn):
        """View response should be compact even mid-variation."""
        session_id = load_pgn(sample_pgn)["session_id"]
        jump_to_move(session_id, 4)
        play_move(session_id, "Nf6")

        response_size = len(json.dumps(get_view(session_id)))
        assert response_size < 700, (
            f"View response is {response_size} chars, expected < 700"
        )

    def test_analysis_response_size(self):
        """Analysis response should be < 500 chars."""
        session_id = new_game()["session_id"]
        response_size = len(json.dumps(analyze_position(session_id)))
        assert response_size < 500, (
            f"Analysis response is {response_size} chars, expected < 500"
        )
