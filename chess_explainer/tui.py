"""Terminal game viewer for Chess Explainer.

Renders a Rich-based chess board, move list (with the active what-if
variation), cursor status and the latest engine evaluation. Auto-updates
by watching data/current_view.json via watchdog at ~4Hz. Supports a
--sample flag that renders a built-in game without the MCP server.
"""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path

import chess
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from chess_explainer.config import Settings
from chess_explainer.display import build_view
from chess_explainer.navigation import Navigator
from chess_explainer.pgn import parse_pgn

_log = logging.getLogger(__name__)

VIEW_FILENAME = "current_view.json"

_SAMPLE_PGN = """[Event "Casual game"]
[White "Anderssen"]
[Black "Dufresne"]
[Result "*"]

1. e4 e5 2. Nf3 Nc6 3. Bc4 Bc5 4. b4 Bxb4 5. c3 Ba5 6. d4 exd4 *
"""

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_HIGHLIGHT = "yellow"


def _load_view(path: Path) -> dict | None:
    """Load a view snapshot from a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed dict or None if file missing/corrupt.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        _log.debug("Could not read %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def sample_view() -> dict:
    """View of a short built-in game with a what-if branch after 4.b4."""
    navigator = Navigator(parse_pgn(_SAMPLE_PGN))
    navigator.jump(6)
    navigator.play_text("Bb6")
    return build_view(navigator.state)


def render_view(view: dict, flipped: bool = False) -> Layout:
    """Render the full layout from a view snapshot.

    Args:
        view: Snapshot as produced by display.build_view.
        flipped: Show the board from Black's side.

    Returns:
        Rich Layout with board and sidebar.
    """
    layout = Layout()
    layout.split_row(
        Layout(name="board", ratio=2),
        Layout(name="sidebar", ratio=1),
    )
    layout["board"].update(_render_board_panel(view, flipped))
    layout["sidebar"].update(_render_sidebar(view))
    return layout


def _render_board_panel(view: dict, flipped: bool) -> Panel:
    fen = view.get("fen", chess.STARTING_FEN)
    last_move = view.get("last_move")
    board = chess.Board(fen)

    highlight_squares: set[int] = set()
    if last_move and len(last_move) >= 4:
        try:
            mv = chess.Move.from_uci(last_move)
            highlight_squares.update((mv.from_square, mv.to_square))
        except (ValueError, chess.InvalidMoveError):
            pass

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))

    # Rank label + 8 squares
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if flipped else range(7, -1, -1)
    files = list(range(7, -1, -1)) if flipped else list(range(8))

    for rank in ranks:
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in files:
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)

            bg = _LIGHT_SQ if (rank + file) % 2 == 1 else _DARK_SQ
            if sq in highlight_squares:
                bg = _HIGHLIGHT

            if piece is not None:
                symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?")
                row.append(Text(f" {symbol} ", style=f"on {bg}"))
            else:
                row.append(Text("   ", style=f"on {bg}"))
        table.add_row(*row)

    file_labels = [Text("  ")]
    for f in files:
        file_labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*file_labels)

    title = "Chess Explainer"
    if view.get("on_branch"):
        title = "Chess Explainer [magenta](what-if)[/magenta]"
    elif view.get("is_game_over"):
        title = f"Game Over: {view.get('result') or board.result()}"

    return Panel(table, title=title, border_style="blue")


def _format_row(row: dict, current: int | None) -> str:
    def _half(san: str | None, index: int | None) -> str:
        if san is None:
            return "..."
        if current is not None and index == current:
            return f"[reverse]{san}[/reverse]"
        return san

    white = _half(row.get("white"), row.get("white_index"))
    black = row.get("black")
    text = f"  {row['number']}. {white}"
    if black is not None:
        text += f" {_half(black, row.get('black_index'))}"
    return text


def _render_sidebar(view: dict) -> Panel:
    parts: list[str] = []

    white = view.get("white") or "?"
    black = view.get("black") or "?"
    parts.append(f"[bold]{white}[/bold] vs [bold]{black}[/bold]")
    if view.get("event"):
        parts.append(f"[italic]{view['event']}[/italic]")
    parts.append(view.get("status", ""))
    parts.append("")

    rows = view.get("rows", [])
    current = None if view.get("on_branch") else view.get("index")
    if rows:
        parts.append("[bold]Moves:[/bold]")
        parts.extend(_format_row(row, current) for row in rows)
    else:
        parts.append("[dim]No moves yet[/dim]")

    variation_rows = view.get("variation_rows", [])
    if variation_rows:
        parts.append("")
        parts.append("[bold magenta]Variation:[/bold magenta]")
        parts.extend(_format_row(row, None) for row in variation_rows)
    parts.append("")

    evaluation = view.get("evaluation")
    if evaluation is not None:
        parts.append(f"[bold]Eval:[/bold] {evaluation['score']} (depth {evaluation['depth']})")
        if evaluation.get("score_type") == "cp":
            bar_len = 20
            # Map eval to 0-1 range (roughly -5 to +5)
            normalized = max(0.0, min(1.0, (evaluation["value"] / 100.0 + 5.0) / 10.0))
            filled = int(normalized * bar_len)
            parts.append("  [" + "█" * filled + "░" * (bar_len - filled) + "]")
        if evaluation.get("best_move"):
            parts.append(f"Best: {evaluation['best_move']}")
        if evaluation.get("line"):
            parts.append(f"  {' '.join(evaluation['line'][:6])}")

    return Panel("\n".join(parts), title="Game", border_style="green")


def _render_waiting() -> Panel:
    return Panel(
        Text("Waiting for a game...\n\nLoad or import a game via the MCP server.",
             justify="center"),
        title="Chess Explainer",
        border_style="dim",
    )


def _watch_loop(console: Console, data_dir: Path, flipped: bool) -> None:
    """Watch current_view.json and auto-update display at ~4Hz."""
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    view_path = data_dir / VIEW_FILENAME
    last_view: dict | None = None
    view_changed = True

    class _Handler(FileSystemEventHandler):
        def on_any_event(self, event):
            nonlocal view_changed
            if str(event.src_path).endswith(VIEW_FILENAME) or str(
                getattr(event, "dest_path", "")
            ).endswith(VIEW_FILENAME):
                view_changed = True

    observer = Observer()
    data_dir.mkdir(parents=True, exist_ok=True)
    observer.schedule(_Handler(), str(data_dir), recursive=False)
    observer.start()

    try:
        with Live(console=console, refresh_per_second=4) as live:
            while True:
                if view_changed:
                    view = _load_view(view_path)
                    if view is not None:
                        last_view = view
                        live.update(render_view(view, flipped))
                    elif last_view is None:
                        live.update(_render_waiting())
                    view_changed = False
                time.sleep(0.25)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()


def main() -> None:
    """CLI entry point for chess_explainer.tui."""
    parser = argparse.ArgumentParser(description="Chess Explainer terminal viewer")
    parser.add_argument(
        "--sample", action="store_true",
        help="Render a built-in sample game and exit (no watch loop)",
    )
    parser.add_argument("--flip", action="store_true", help="View from Black's side")
    args = parser.parse_args()

    console = Console()

    if args.sample:
        console.print(render_view(sample_view(), args.flip))
        return

    _watch_loop(console, Settings.from_env().data_dir, args.flip)


if __name__ == "__main__":
    main()
