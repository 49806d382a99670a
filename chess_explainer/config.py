"""Runtime settings read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_DEPTH = 15
DEFAULT_MULTIPV = 3
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_HTTP_TIMEOUT = 10.0


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class Settings:
    """Configuration for the engine, chat backend and import providers."""

    stockfish_path: str | None = None
    analysis_depth: int = DEFAULT_DEPTH
    multipv: int = DEFAULT_MULTIPV
    gemini_api_key: str | None = None
    model: str = DEFAULT_MODEL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    data_dir: Path = _PROJECT_ROOT / "data"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the process environment.

        Malformed or non-positive numbers fall back to the defaults.
        """
        data_dir = os.environ.get("CHESS_EXPLAINER_DATA_DIR")
        return cls(
            stockfish_path=os.environ.get("STOCKFISH_PATH") or None,
            analysis_depth=_int_env("CHESS_EXPLAINER_DEPTH", DEFAULT_DEPTH),
            multipv=_int_env("CHESS_EXPLAINER_MULTIPV", DEFAULT_MULTIPV),
            gemini_api_key=(
                os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY") or None
            ),
            model=os.environ.get("CHESS_EXPLAINER_MODEL") or DEFAULT_MODEL,
            http_timeout=_float_env("CHESS_EXPLAINER_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            data_dir=Path(data_dir) if data_dir else _PROJECT_ROOT / "data",
        )
