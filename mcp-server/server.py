"""MCP server for Chess Explainer.

Exposes the game viewer (navigation, what-if branches, engine analysis,
coach chat and game import) as tools via FastMCP. Viewer sessions are
kept in memory keyed by UUID. The displayed view is synced to
data/current_view.json after every change for TUI consumption.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from dataclasses import asdict
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

import chess
import chess.engine
from mcp.server.fastmcp import FastMCP

from chess_explainer import engine as engine_client
from chess_explainer.analysis import AnalysisSession
from chess_explainer.coach import ChatSession, ChessCoach
from chess_explainer.config import Settings
from chess_explainer.display import build_view, ply_offset
from chess_explainer.importers import ChessComClient, ImportProviderError, LichessClient
from chess_explainer.models import GameRecord, ImportedGame, Move
from chess_explainer.navigation import Navigator
from chess_explainer.pgn import PgnParseError, export_pgn, parse_pgn
from chess_explainer.rules import IllegalMoveError, legal_moves_san
from chess_explainer.storage import MemoryStore
from chess_explainer.tui import VIEW_FILENAME

from response_schemas import (  # noqa: E402
    minify_analysis,
    minify_evaluation_graph,
    minify_view,
)

_log = logging.getLogger(__name__)

mcp = FastMCP("chess-explainer")

_settings = Settings.from_env()
_DATA_DIR = _settings.data_dir

# In-memory viewer sessions: session_id -> {navigator, chat, analysis, imports, ...}
_sessions: dict[str, dict] = {}

_store = MemoryStore()
_chesscom = ChessComClient(timeout=_settings.http_timeout)
_lichess = LichessClient(timeout=_settings.http_timeout)

# Created on first use so the server starts without Stockfish or an API key
_engine: engine_client.ChessEngine | None = None
_coach: ChessCoach | None = None

_NAVIGATION_ACTIONS = ("first", "previous", "next", "last")


def _get_engine() -> engine_client.ChessEngine:
    global _engine
    if _engine is None:
        _engine = engine_client.ChessEngine(
            stockfish_path=_settings.stockfish_path,
            depth=_settings.analysis_depth,
            multipv=_settings.multipv,
        )
    return _engine


def _get_coach() -> ChessCoach:
    global _coach
    if _coach is None:
        _coach = ChessCoach(api_key=_settings.gemini_api_key, model=_settings.model)
    return _coach


def _get_session(session_id: str) -> dict | None:
    """Look up a viewer session by ID.

    Args:
        session_id: UUID string.

    Returns:
        Session dict or None if not found.
    """
    return _sessions.get(session_id)


def _new_session() -> tuple[str, dict]:
    session_id = str(uuid.uuid4())
    session = {
        "navigator": Navigator(),
        "chat": ChatSession(_get_coach()),
        "analysis": None,
        "stored_id": None,
        "imports": [],
        "archives": [],
    }
    _sessions[session_id] = session
    return session_id, session


def _session_or_new(session_id: str | None) -> tuple[str, dict] | None:
    if session_id is None:
        return _new_session()
    session = _get_session(session_id)
    if session is None:
        return None
    return session_id, session


def _analysis_for(session: dict) -> AnalysisSession:
    if session["analysis"] is None:
        session["analysis"] = AnalysisSession(
            _get_engine(),
            depth=_settings.analysis_depth,
            multipv=_settings.multipv,
        )
    return session["analysis"]


def _build_view(session_id: str, session: dict) -> dict:
    """Full view snapshot for a session, including its latest evaluation."""
    analysis: AnalysisSession | None = session["analysis"]
    evaluation = analysis.current if analysis is not None else None
    view = build_view(session["navigator"].state, evaluation)
    view["session_id"] = session_id
    return view


def _sync_view_json(view: dict) -> None:
    """Write the view to data/current_view.json atomically.

    Uses temp file + os.replace() for atomic write.

    Args:
        view: View dict to persist.
    """
    _DATA_DIR.mkdir(parents=True, exist_ok=True)
    target = _DATA_DIR / VIEW_FILENAME
    tmp = _DATA_DIR / "current_view.tmp"
    tmp.write_text(
        json.dumps(view, indent=2, default=str, ensure_ascii=False),
        encoding="utf-8",
    )
    os.replace(tmp, target)


def _respond(session_id: str, session: dict) -> dict:
    view = _build_view(session_id, session)
    _sync_view_json(view)
    return minify_view(view)


def _load_game(session: dict, game: GameRecord) -> None:
    """Show a freshly loaded game: cursor at the start, fresh chat."""
    session["navigator"].load(game)
    stored = _store.save_game(game.pgn, game.metadata)
    session["stored_id"] = stored.id
    session["chat"] = ChatSession(_get_coach())
    if session["analysis"] is not None:
        session["analysis"].cancel()


def _load_pgn_text(session_id: str | None, pgn: str) -> dict:
    if session_id is not None and _get_session(session_id) is None:
        return {"error": f"Session not found: {session_id}"}
    try:
        game = parse_pgn(pgn)
    except PgnParseError as exc:
        return {"error": str(exc)}
    session_id, session = _session_or_new(session_id)
    _load_game(session, game)
    return _respond(session_id, session)


def _moves_to_cursor(navigator: Navigator) -> tuple[list[Move], int]:
    """Moves actually played to reach the displayed position, and its index."""
    moves = list(navigator.game.moves)
    branch = navigator.branch
    if branch is None:
        return moves, navigator.index
    path = moves[: branch.base_index + 1] + list(branch.moves)
    return path, len(path) - 1


def _import_summary(number: int, game: ImportedGame) -> dict:
    return {
        "number": number,
        "white": game.white,
        "black": game.black,
        "result": game.result,
        "timestamp": game.timestamp,
        "url": game.url,
    }


# ---------------------------------------------------------------------------
# Game loading tools
# ---------------------------------------------------------------------------


@mcp.tool()
def new_game(starting_fen: str | None = None, session_id: str | None = None) -> dict:
    """Start an empty game for free exploration.

    Args:
        starting_fen: Optional custom starting position FEN.
        session_id: Existing viewer session to reuse; a new one is created
            when omitted.

    Returns:
        View dict at the starting position.
    """
    if session_id is not None and _get_session(session_id) is None:
        return {"error": f"Session not found: {session_id}"}

    fen = starting_fen or chess.STARTING_FEN
    try:
        board = chess.Board(fen)
    except ValueError as exc:
        return {"error": f"Invalid FEN: {exc}"}
    if not board.is_valid():
        return {"error": f"Invalid FEN position: {fen}"}

    session_id, session = _session_or_new(session_id)
    _load_game(session, GameRecord(starting_fen=board.fen()))
    return _respond(session_id, session)


@mcp.tool()
def load_pgn(pgn: str, session_id: str | None = None) -> dict:
    """Load a game from PGN text.

    The cursor starts at the starting position so the game can be
    replayed from the beginning.

    Args:
        pgn: PGN text (tags and/or movetext).
        session_id: Existing viewer session to reuse.

    Returns:
        View dict, or an error if the PGN cannot be parsed.
    """
    return _load_pgn_text(session_id, pgn)


@mcp.tool()
def import_chesscom_game(game_url: str, session_id: str | None = None) -> dict:
    """Import a single Chess.com game by its URL.

    Args:
        game_url: URL of a live or daily game page on chess.com.
        session_id: Existing viewer session to reuse.

    Returns:
        View dict of the imported game.
    """
    try:
        pgn = _chesscom.fetch_game(game_url)
    except ImportProviderError as exc:
        return {"error": str(exc)}
    return _load_pgn_text(session_id, pgn)


@mcp.tool()
def import_lichess_game(game_id: str, session_id: str | None = None) -> dict:
    """Import a single Lichess game by id or URL.

    Args:
        game_id: Eight-character Lichess game id, or a lichess.org URL.
        session_id: Existing viewer session to reuse.

    Returns:
        View dict of the imported game.
    """
    try:
        imported = _lichess.fetch_game(game_id)
    except ImportProviderError as exc:
        return {"error": str(exc)}
    return _load_pgn_text(session_id, imported.pgn)


@mcp.tool()
def find_chesscom_games(
    username: str,
    archive_url: str | None = None,
    session_id: str | None = None,
) -> dict:
    """List a Chess.com user's games, one monthly archive at a time.

    Args:
        username: Chess.com username.
        archive_url: Archive to list; the most recent one when omitted.
            Other archive URLs are returned for paging.
        session_id: Existing viewer session to attach the list to.

    Returns:
        Dict with session_id, games (numbered summaries) and archives.
    """
    if session_id is not None and _get_session(session_id) is None:
        return {"error": f"Session not found: {session_id}"}

    try:
        if archive_url is None:
            games, archives = _chesscom.recent_games(username)
            archive_url = archives[-1]
        else:
            archives = _chesscom.archives(username)
            games = _chesscom.games(archive_url)
    except ImportProviderError as exc:
        return {"error": str(exc)}

    session_id, session = _session_or_new(session_id)
    session["imports"] = games
    session["archives"] = archives
    return {
        "session_id": session_id,
        "archive_url": archive_url,
        "archives": archives,
        "games": [_import_summary(i, g) for i, g in enumerate(games, 1)],
    }


@mcp.tool()
def find_lichess_games(
    username: str,
    max_games: int = 10,
    session_id: str | None = None,
) -> dict:
    """List a Lichess user's most recent games.

    Args:
        username: Lichess username.
        max_games: Number of games to fetch (1-50). Default 10.
        session_id: Existing viewer session to attach the list to.

    Returns:
        Dict with session_id and games (numbered summaries).
    """
    if session_id is not None and _get_session(session_id) is None:
        return {"error": f"Session not found: {session_id}"}

    max_games = max(1, min(50, max_games))
    try:
        games = _lichess.recent_games(username, max_games=max_games)
    except ImportProviderError as exc:
        return {"error": str(exc)}

    session_id, session = _session_or_new(session_id)
    session["imports"] = games
    session["archives"] = []
    return {
        "session_id": session_id,
        "games": [_import_summary(i, g) for i, g in enumerate(games, 1)],
    }


@mcp.tool()
def load_imported_game(session_id: str, number: int) -> dict:
    """Load one game from the session's last game listing.

    Args:
        session_id: UUID of the viewer session.
        number: 1-based number from find_chesscom_games/find_lichess_games.

    Returns:
        View dict of the loaded game.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    imports: list[ImportedGame] = session["imports"]
    if not imports:
        return {"error": "No game listing in this session. List games first."}
    if not 1 <= number <= len(imports):
        return {"error": f"Game number must be between 1 and {len(imports)}"}
    return _load_pgn_text(session_id, imports[number - 1].pgn)


# ---------------------------------------------------------------------------
# Navigation tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_view(session_id: str) -> dict:
    """Get the displayed position, move list and status for a session.

    Args:
        session_id: UUID of the viewer session.

    Returns:
        View dict.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    return minify_view(_build_view(session_id, session))


@mcp.tool()
def navigate(session_id: str, action: str) -> dict:
    """Step through the game.

    'previous' while exploring a variation returns to the main-line
    position it branched from. 'next' never enters a variation.

    Args:
        session_id: UUID of the viewer session.
        action: One of 'first', 'previous', 'next', 'last'.

    Returns:
        Updated view dict.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    if action not in _NAVIGATION_ACTIONS:
        return {"error": f"Unknown action: {action}. Use one of {list(_NAVIGATION_ACTIONS)}"}

    getattr(session["navigator"], action)()
    return _respond(session_id, session)


@mcp.tool()
def jump_to_move(session_id: str, index: int) -> dict:
    """Jump to a main-line move, abandoning any variation.

    Args:
        session_id: UUID of the viewer session.
        index: Main-line move index (0-based; -1 for the starting
            position). Out-of-range values are clamped.

    Returns:
        Updated view dict.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    session["navigator"].jump(index)
    return _respond(session_id, session)


@mcp.tool()
def play_move(session_id: str, move: str) -> dict:
    """Play a move from the displayed position.

    At the end of the main line the move extends the game. Anywhere else
    it starts (or extends) a what-if variation; the recorded game is not
    changed.

    Args:
        session_id: UUID of the viewer session.
        move: Move in SAN (e.g. 'Nf3') or UCI (e.g. 'g1f3').

    Returns:
        Updated view dict, or an error listing the legal moves.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    navigator: Navigator = session["navigator"]
    try:
        navigator.play_text(move)
    except IllegalMoveError as exc:
        return {"error": f"{exc}. Legal moves: {legal_moves_san(navigator.fen)}"}
    return _respond(session_id, session)


@mcp.tool()
def clear_variation(session_id: str) -> dict:
    """Discard the what-if variation and return to where it branched off.

    Args:
        session_id: UUID of the viewer session.

    Returns:
        Updated view dict.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    session["navigator"].clear_branch()
    return _respond(session_id, session)


@mcp.tool()
def get_game_pgn(session_id: str, include_variation: bool = True) -> dict:
    """Export the game as PGN.

    Args:
        session_id: UUID of the viewer session.
        include_variation: Write the active what-if variation as a PGN
            variation. Default True.

    Returns:
        Dict with pgn string.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    navigator: Navigator = session["navigator"]
    branch = navigator.branch if include_variation else None
    return {"pgn": export_pgn(navigator.game, branch)}


# ---------------------------------------------------------------------------
# Analysis tools
# ---------------------------------------------------------------------------


@mcp.tool()
def analyze_position(session_id: str) -> dict:
    """Run Stockfish on the displayed position.

    Args:
        session_id: UUID of the viewer session.

    Returns:
        Dict with fen, depth, and lines (each with rank, score, best_move,
        moves, mate_in).
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    fen = session["navigator"].fen
    try:
        evaluation = _analysis_for(session).analyze(fen)
    except (FileNotFoundError, chess.engine.EngineError) as exc:
        _log.error("Engine analysis failed: %s", exc)
        return {"error": f"Engine unavailable: {exc}"}
    if evaluation is None:
        return {"error": "Analysis was superseded by a newer request"}

    _sync_view_json(_build_view(session_id, session))
    lines = [
        {
            "rank": line.rank,
            "score": line.describe(),
            "best_move": line.best_move_san,
            "moves": line.line,
            "mate_in": line.value if line.score_type == "mate" else None,
        }
        for line in evaluation.lines
    ]
    depth = evaluation.best.depth if evaluation.best else _settings.analysis_depth
    return minify_analysis({"fen": fen, "depth": depth, "lines": lines})


@mcp.tool()
def evaluate_game(session_id: str, depth: int = 12) -> dict:
    """Evaluate every main-line position for an evaluation graph.

    Args:
        session_id: UUID of the viewer session.
        depth: Search depth per position (default 12).

    Returns:
        Dict with evaluations (pawns, White's view, starting position
        first) and critical_indices (move indices with a large swing).
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    game: GameRecord = session["navigator"].game
    try:
        points = _analysis_for(session).evaluate_game(game, depth=depth)
    except (FileNotFoundError, chess.engine.EngineError) as exc:
        _log.error("Game evaluation failed: %s", exc)
        return {"error": f"Engine unavailable: {exc}"}
    return minify_evaluation_graph([asdict(p) for p in points])


# ---------------------------------------------------------------------------
# Coach tools
# ---------------------------------------------------------------------------


@mcp.tool()
def explain_position(session_id: str, question: str | None = None) -> dict:
    """Ask the coach to explain the displayed position.

    Uses the latest engine analysis of the position when one exists.

    Args:
        session_id: UUID of the viewer session.
        question: Optional specific question.

    Returns:
        Dict with fen and explanation.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    navigator: Navigator = session["navigator"]
    fen = navigator.fen
    game = navigator.game
    analysis: AnalysisSession | None = session["analysis"]
    current = analysis.current if analysis is not None else None
    lines = current.lines if current is not None and current.fen == fen else None

    explanation = _get_coach().explain(
        fen,
        *_moves_to_cursor(navigator),
        engine_lines=lines,
        question=question,
        first_ply=ply_offset(game.starting_fen),
    )
    return {"fen": fen, "explanation": explanation}


@mcp.tool()
def send_chat_message(session_id: str, message: str) -> dict:
    """Send a chat message about the displayed position.

    Args:
        session_id: UUID of the viewer session.
        message: The user's question.

    Returns:
        The coach's reply as a chat message dict.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    navigator: Navigator = session["navigator"]
    fen = navigator.fen
    game = navigator.game
    analysis: AnalysisSession | None = session["analysis"]
    current = analysis.current if analysis is not None else None
    lines = current.lines if current is not None and current.fen == fen else None

    chat: ChatSession = session["chat"]
    try:
        reply = chat.send(
            message,
            fen,
            *_moves_to_cursor(navigator),
            engine_lines=lines,
            first_ply=ply_offset(game.starting_fen),
        )
    except ValueError as exc:
        return {"error": str(exc)}

    if session["stored_id"] is not None:
        _store.save_chat(session["stored_id"], chat.messages)
    return asdict(reply)


@mcp.tool()
def get_chat(session_id: str) -> dict:
    """Get the chat transcript for the session's current game.

    Args:
        session_id: UUID of the viewer session.

    Returns:
        Dict with messages (oldest first).
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    return {"messages": [asdict(m) for m in session["chat"].messages]}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    # stdout carries the MCP stdio transport
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        mcp.run()
    finally:
        if _engine is not None:
            _engine.close()


if __name__ == "__main__":
    main()
