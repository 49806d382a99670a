"""Game import from Chess.com and Lichess.

Both clients return raw PGN (wrapped in ImportedGame records with
basic player/result metadata); parsing into a GameRecord is the
caller's job. Chess.com games are paged one monthly archive at a time.
"""

from __future__ import annotations

import json
import logging
import re

import requests

from chess_explainer.config import DEFAULT_HTTP_TIMEOUT
from chess_explainer.models import ImportedGame

_log = logging.getLogger(__name__)

_USER_AGENT = "chess-explainer/0.1 (+https://github.com)"

_CHESSCOM_ARCHIVES_URL = "https://api.chess.com/pub/player/{username}/games/archives"
_CHESSCOM_EXPORT_ENDPOINTS = [
    "https://www.chess.com/callback/game/live/export/pgn/{game_id}",
    "https://www.chess.com/callback/game/daily/export/pgn/{game_id}",
    "https://www.chess.com/callback/games/archive/live/download/{game_id}",
    "https://www.chess.com/callback/games/archive/daily/download/{game_id}",
]
_CHESSCOM_GAME_ID_PATTERNS = [
    re.compile(r"/live/game/(\d+)"),
    re.compile(r"/game/live/(\d+)"),
    re.compile(r"/daily/game/(\d+)"),
    re.compile(r"/game/daily/(\d+)"),
    re.compile(r"/(\d+)/?$"),
]

_LICHESS_EXPORT_URL = "https://lichess.org/game/export/{game_id}"
_LICHESS_USER_GAMES_URL = "https://lichess.org/api/games/user/{username}"
_LICHESS_ID_RE = re.compile(r"^(?:https?://)?(?:www\.)?lichess\.org/([A-Za-z0-9]{8})")
_LICHESS_BARE_ID_RE = re.compile(r"^[A-Za-z0-9]{8}(?:[A-Za-z0-9]{4})?$")


class ImportProviderError(RuntimeError):
    """Raised when an import provider is unreachable or has no such game/user."""


def _get(session: requests.Session, url: str, timeout: float, **kwargs) -> requests.Response:
    try:
        return session.get(url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        _log.error("Request to %s failed: %s", url, exc)
        raise ImportProviderError(f"Could not reach {url}: {exc}") from exc


def _json(response: requests.Response, provider: str) -> dict:
    try:
        data = response.json()
    except requests.JSONDecodeError as exc:
        _log.error("Non-JSON response from %s: %s", provider, exc)
        raise ImportProviderError(f"Unexpected response from {provider}") from exc
    if not isinstance(data, dict):
        raise ImportProviderError(f"Unexpected response from {provider}")
    return data


def extract_chesscom_game_id(game_url: str) -> str:
    """Numeric game id from any of the Chess.com game URL shapes.

    Raises:
        ImportProviderError: If no id can be found.
    """
    url = game_url.strip()
    for pattern in _CHESSCOM_GAME_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    raise ImportProviderError(
        "Invalid Chess.com game URL. Please use a URL from a game page on chess.com"
    )


def extract_lichess_game_id(value: str) -> str:
    """Eight-character Lichess game id from a URL or a bare id.

    Raises:
        ImportProviderError: If the value is neither.
    """
    value = value.strip()
    match = _LICHESS_ID_RE.match(value)
    if match:
        return match.group(1)
    if _LICHESS_BARE_ID_RE.match(value):
        return value[:8]
    raise ImportProviderError(f"Invalid Lichess game id: {value!r}")


def _chesscom_result(game: dict) -> str:
    white = game.get("white", {}).get("result")
    black = game.get("black", {}).get("result")
    if white == "win":
        return "1-0"
    if black == "win":
        return "0-1"
    if white is None and black is None:
        return "*"
    return "1/2-1/2"


def _lichess_result(game: dict) -> str:
    winner = game.get("winner")
    if winner == "white":
        return "1-0"
    if winner == "black":
        return "0-1"
    if game.get("status") in ("created", "started"):
        return "*"
    return "1/2-1/2"


def _lichess_player(game: dict, color: str) -> str:
    player = game.get("players", {}).get(color, {})
    user = player.get("user") or {}
    if user.get("name"):
        return user["name"]
    if player.get("aiLevel"):
        return f"Stockfish level {player['aiLevel']}"
    return "?"


class ChessComClient:
    """Chess.com public API client."""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", _USER_AGENT)
        self._timeout = timeout

    def archives(self, username: str) -> list[str]:
        """Monthly archive URLs for a user, oldest first.

        Raises:
            ImportProviderError: If the user does not exist or the API fails.
        """
        url = _CHESSCOM_ARCHIVES_URL.format(username=username.strip().lower())
        response = _get(self._session, url, self._timeout)
        if response.status_code == 404:
            raise ImportProviderError("User not found on Chess.com")
        if not response.ok:
            raise ImportProviderError(
                f"Chess.com archives request failed ({response.status_code})"
            )
        return list(_json(response, "Chess.com").get("archives", []))

    def games(self, archive_url: str) -> list[ImportedGame]:
        """Games of one monthly archive, newest first; games without PGN are skipped."""
        response = _get(self._session, archive_url, self._timeout)
        if not response.ok:
            raise ImportProviderError(
                f"Failed to fetch games from Chess.com ({response.status_code})"
            )
        games = []
        for game in _json(response, "Chess.com").get("games", []):
            pgn = game.get("pgn")
            if not pgn or not pgn.strip():
                continue
            games.append(
                ImportedGame(
                    pgn=pgn,
                    white=game.get("white", {}).get("username", "?"),
                    black=game.get("black", {}).get("username", "?"),
                    result=_chesscom_result(game),
                    timestamp=int(game.get("end_time", 0)),
                    url=game.get("url"),
                )
            )
        games.reverse()
        return games

    def recent_games(self, username: str) -> tuple[list[ImportedGame], list[str]]:
        """Games from the user's latest archive, plus all archive URLs for paging.

        Raises:
            ImportProviderError: If the user has no games in the latest archive.
        """
        archives = self.archives(username)
        if not archives:
            raise ImportProviderError("No games found for user")
        games = self.games(archives[-1])
        if not games:
            raise ImportProviderError("No games found for user in the latest month")
        return games, archives

    def fetch_game(self, game_url: str) -> str:
        """PGN of a single game, trying each export endpoint in turn.

        Raises:
            ImportProviderError: If the URL has no game id or no endpoint
                returns the game.
        """
        game_id = extract_chesscom_game_id(game_url)
        _log.info("Fetching Chess.com game %s", game_id)
        for endpoint in _CHESSCOM_EXPORT_ENDPOINTS:
            url = endpoint.format(game_id=game_id)
            response = _get(self._session, url, self._timeout)
            if response.ok and response.text.strip():
                return response.text
            _log.debug("Endpoint %s returned %s", url, response.status_code)
        raise ImportProviderError(
            "Game not found on Chess.com. Check your URL and try again."
        )


class LichessClient:
    """Lichess public API client."""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", _USER_AGENT)
        self._timeout = timeout

    def _to_imported(self, game: dict) -> ImportedGame:
        game_id = game.get("id")
        return ImportedGame(
            pgn=game.get("pgn", ""),
            white=_lichess_player(game, "white"),
            black=_lichess_player(game, "black"),
            result=_lichess_result(game),
            timestamp=int(game.get("lastMoveAt", game.get("createdAt", 0))) // 1000,
            url=f"https://lichess.org/{game_id}" if game_id else None,
        )

    def fetch_game(self, game_id: str) -> ImportedGame:
        """A single game by id or URL.

        Raises:
            ImportProviderError: If the game does not exist or the API fails.
        """
        game_id = extract_lichess_game_id(game_id)
        response = _get(
            self._session,
            _LICHESS_EXPORT_URL.format(game_id=game_id),
            self._timeout,
            params={"pgnInJson": "true"},
            headers={"Accept": "application/json"},
        )
        if response.status_code == 404:
            raise ImportProviderError("Game not found on Lichess")
        if not response.ok:
            raise ImportProviderError(f"Lichess request failed ({response.status_code})")
        game = _json(response, "Lichess")
        if not game.get("pgn"):
            raise ImportProviderError("No game data found")
        return self._to_imported(game)

    def recent_games(self, username: str, max_games: int = 10) -> list[ImportedGame]:
        """A user's most recent games, newest first.

        Raises:
            ImportProviderError: If the user does not exist, has no
                games, or the API fails.
        """
        response = _get(
            self._session,
            _LICHESS_USER_GAMES_URL.format(username=username.strip()),
            self._timeout,
            params={"max": max_games, "pgnInJson": "true"},
            headers={"Accept": "application/x-ndjson"},
        )
        if response.status_code == 404:
            raise ImportProviderError("User not found on Lichess")
        if not response.ok:
            raise ImportProviderError(f"Lichess request failed ({response.status_code})")

        games = []
        for line in response.text.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                game = json.loads(line)
            except json.JSONDecodeError:
                _log.warning("Skipping malformed Lichess game record")
                continue
            if game.get("pgn"):
                games.append(self._to_imported(game))
        if not games:
            raise ImportProviderError("No games found for user")
        return games
