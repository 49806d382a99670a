"""Response schemas and minification for MCP tool responses.

Minifies MCP tool return values to reduce LLM context token waste.
data/current_view.json (TUI sync) is NOT affected; only MCP return values.

Move lists are returned as compact movetext (1.e4 e5 2.Nf3 ...), which
is natural for the LLM agent to read.
"""

from __future__ import annotations

import os

from chess_explainer.display import format_pgn_moves

VALIDATE_ENV = "CHESS_EXPLAINER_VALIDATE"


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_view(view: dict) -> dict:
    """Minify a view snapshot for MCP response.

    Drops the TUI-only move rows, compacts the move list to movetext and
    replaces the legal move list with its count.

    Args:
        view: Full snapshot (as produced by display.build_view).

    Returns:
        Minified dict with reduced token footprint.
    """
    result = {}

    for key in (
        "session_id", "fen", "index", "tip", "on_branch", "can_go_back",
        "can_go_forward", "status", "last_move_san", "turn", "is_game_over",
        "white", "black", "result",
    ):
        if key in view:
            result[key] = view[key]

    moves = view.get("moves", [])
    result["move_list"] = format_pgn_moves(moves, view.get("first_ply", 0))

    variation = view.get("variation")
    if isinstance(variation, dict):
        result["variation"] = {
            "base_index": variation.get("base_index"),
            "moves": variation.get("text", ""),
        }
    else:
        result["variation"] = None

    legal_moves = view.get("legal_moves", [])
    result["legal_moves_count"] = len(legal_moves) if isinstance(legal_moves, list) else 0

    evaluation = view.get("evaluation")
    if isinstance(evaluation, dict):
        result["evaluation"] = {
            "score": evaluation.get("score"),
            "best_move": evaluation.get("best_move"),
        }
    else:
        result["evaluation"] = None

    # Removed fields: rows, variation_rows, starting_fen, first_ply,
    # last_move (uci), event, date

    return result


def minify_analysis(analysis: dict) -> dict:
    """Minify an analysis response dict for MCP response.

    Truncates PV moves to 5 per line, removes null mate_in keys.

    Args:
        analysis: Full analysis dict with fen, depth, lines.

    Returns:
        Minified dict.
    """
    result = {
        "fen": analysis.get("fen"),
        "depth": analysis.get("depth"),
    }

    minified_lines = []
    for line in analysis.get("lines", []):
        ml = {
            "rank": line.get("rank"),
            "score": line.get("score"),
            "best_move": line.get("best_move"),
        }

        moves = line.get("moves", [])
        ml["moves"] = moves[:5] if isinstance(moves, list) else moves

        # Only include mate_in when not None
        mate_in = line.get("mate_in")
        if mate_in is not None:
            ml["mate_in"] = mate_in

        minified_lines.append(ml)

    result["lines"] = minified_lines
    return result


def minify_evaluation_graph(points: list[dict]) -> dict:
    """Collapse a whole-game evaluation series for MCP response.

    Keeps the full series as rounded floats and lists the critical
    indices separately.

    Args:
        points: Dicts with index, evaluation, is_critical.

    Returns:
        Dict with evaluations and critical_indices.
    """
    return {
        "evaluations": [round(p["evaluation"], 2) for p in points],
        "critical_indices": [p["index"] for p in points if p.get("is_critical")],
    }


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

VIEW_SCHEMA = {
    "fen": str,
    "index": int,
    "tip": int,
    "on_branch": bool,
    "can_go_back": bool,
    "can_go_forward": bool,
    "status": str,
    "last_move_san": (str, type(None)),
    "turn": str,
    "is_game_over": bool,
    "move_list": str,
    "variation": (dict, type(None)),
    "legal_moves_count": int,
    "evaluation": (dict, type(None)),
}

ANALYSIS_SCHEMA = {
    "fen": str,
    "depth": int,
    "lines": list,
}

EVALUATION_GRAPH_SCHEMA = {
    "evaluations": list,
    "critical_indices": list,
}

CHAT_MESSAGE_SCHEMA = {
    "role": str,
    "content": str,
    "timestamp": int,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when CHESS_EXPLAINER_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get(VALIDATE_ENV) != "1":
        return []

    if not isinstance(response, dict):
        return [f"Response is not a dict: {type(response).__name__}"]

    errors = []
    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        types = expected_types if isinstance(expected_types, tuple) else (expected_types,)
        # bool is an int subclass; only accept it where bool is expected
        if isinstance(value, bool) and bool not in types:
            ok = False
        else:
            ok = isinstance(value, types)
        if not ok:
            type_names = ", ".join(t.__name__ for t in types)
            errors.append(
                f"Key '{key}': expected ({type_names}), got {type(value).__name__}"
            )

    return errors
