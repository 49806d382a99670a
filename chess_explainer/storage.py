"""In-memory store for saved games and their chat transcripts.

Nothing is written to disk; a process restart forgets everything.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from chess_explainer.models import ChatMessage, GameMetadata

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredGame:
    id: int
    pgn: str
    metadata: GameMetadata = field(default_factory=GameMetadata)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class StoredChat:
    id: int
    game_id: int
    messages: tuple[ChatMessage, ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MemoryStore:
    """Games keyed by auto-incremented id; at most one chat per game."""

    def __init__(self) -> None:
        self._games: dict[int, StoredGame] = {}
        self._chats: dict[int, StoredChat] = {}
        self._next_game_id = 1
        self._next_chat_id = 1

    def save_game(self, pgn: str, metadata: GameMetadata | None = None) -> StoredGame:
        game = StoredGame(id=self._next_game_id, pgn=pgn, metadata=metadata or GameMetadata())
        self._games[game.id] = game
        self._next_game_id += 1
        _log.debug("Stored game %d", game.id)
        return game

    def get_game(self, game_id: int) -> StoredGame | None:
        return self._games.get(game_id)

    def list_games(self) -> list[StoredGame]:
        """All stored games, oldest first."""
        return [self._games[k] for k in sorted(self._games)]

    def get_chat(self, game_id: int) -> StoredChat | None:
        return self._chats.get(game_id)

    def save_chat(self, game_id: int, messages: Sequence[ChatMessage]) -> StoredChat:
        """Create the chat for game_id, or replace its messages if it exists.

        Raises:
            KeyError: If no game with game_id is stored.
        """
        if game_id not in self._games:
            raise KeyError(f"Game {game_id} not found")

        existing = self._chats.get(game_id)
        if existing is not None:
            chat = StoredChat(
                id=existing.id,
                game_id=game_id,
                messages=tuple(messages),
                created_at=existing.created_at,
            )
        else:
            chat = StoredChat(id=self._next_chat_id, game_id=game_id, messages=tuple(messages))
            self._next_chat_id += 1
        self._chats[game_id] = chat
        return chat
