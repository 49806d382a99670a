"""Natural-language position explanations via Google Gemini.

ChessCoach turns a position (FEN, recent moves, optional engine lines,
optional user question) into a prompt and asks Gemini for an
explanation. ChatSession keeps a per-game conversation: each user
message gets exactly one assistant reply, or one synthetic error
message if the backend fails. Nothing is retried automatically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import httpx
from google import genai
from google.genai import errors, types

from chess_explainer.analysis import format_engine_lines
from chess_explainer.config import DEFAULT_MODEL
from chess_explainer.display import describe_cursor, recent_moves
from chess_explainer.models import ChatMessage, EngineLine, Move

_log = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Sorry, I couldn't analyze this position. Please try again later."

# Conversation turns sent along with a chat question
_HISTORY_TURNS = 10

SYSTEM_PROMPT = """You are a chess coach giving concise, insightful analysis of chess positions.

When analyzing a position, weigh these principles:
1. Piece activity and how to improve the worst-placed piece
2. King safety, pawn shelter and attacking chances
3. Pawn structure: weaknesses, islands, chains and pawn breaks
4. Control of the center
5. Material balance, including piece coordination
6. Space
7. Development, especially in the opening
8. Tactical motifs: pins, forks, discovered attacks
9. Tempo and initiative
10. Endgame factors: king activity and promotion chances

Give concrete moves and plans rather than general statements. If one side is
clearly winning, say which side and why. Use standard chess terminology."""


class CoachError(RuntimeError):
    """Raised when the language-model backend cannot produce a reply."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_prompt(
    fen: str,
    moves: Sequence[Move],
    index: int,
    engine_lines: Sequence[EngineLine] | None = None,
    question: str | None = None,
    first_ply: int = 0,
) -> str:
    """Prompt text for one position.

    Args:
        fen: Displayed position.
        moves: Main-line moves (for the recent-moves context).
        index: Main-line cursor index.
        engine_lines: Optional engine evaluation of the position.
        question: Optional user question; otherwise a general analysis
            is requested.
        first_ply: Ply of the first main-line move.

    Returns:
        Prompt string.
    """
    parts = []
    if question:
        parts.append(f'Analyze this chess position and answer the question: "{question}"')
    else:
        parts.append("Analyze this chess position.")
    parts.append(f"FEN: {fen}")
    parts.append(f"Position: {describe_cursor(moves, index, first_ply)}")

    context = recent_moves(moves, index, count=5, first_ply=first_ply)
    if context:
        shown = min(5, index + 1)
        parts.append(f"Last {shown} moves leading to the current position:\n{context}")

    if engine_lines:
        parts.append(f"Engine analysis:\n{format_engine_lines(list(engine_lines))}")

    parts.append(
        "Cover the key tactical and strategic elements, the main threats and "
        "opportunities, and plans for both sides. Keep it clear and concise."
    )
    return "\n\n".join(parts)


class ChessCoach:
    """Gemini-backed explainer."""

    def __init__(
        self,
        client: genai.Client | None = None,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.5,
        max_output_tokens: int = 2000,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def ask(self, prompt: str, history: Sequence[ChatMessage] = ()) -> str:
        """Send prompt (after any prior turns) and return the reply text.

        Raises:
            CoachError: If the client cannot be created, the API call
                fails, or the reply is empty.
        """
        contents = [
            {"role": "user" if m.role == "user" else "model", "parts": [{"text": m.content}]}
            for m in history
        ]
        contents.append({"role": "user", "parts": [{"text": prompt}]})

        try:
            response = self._get_client().models.generate_content(
                model=self._model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=SYSTEM_PROMPT,
                    temperature=self._temperature,
                    max_output_tokens=self._max_output_tokens,
                ),
            )
        except errors.APIError as exc:
            _log.error("Gemini API error %s: %s", exc.code, exc.message)
            raise CoachError(f"Language model error: {exc.message}") from exc
        except httpx.HTTPError as exc:
            _log.error("Could not reach Gemini: %s", exc)
            raise CoachError(f"Could not reach language model: {exc}") from exc
        except ValueError as exc:
            # Raised by genai.Client when no API key is configured
            _log.error("Gemini client unavailable: %s", exc)
            raise CoachError(str(exc)) from exc

        text = response.text
        if not text:
            raise CoachError("Language model returned an empty reply")
        return text

    def explain(
        self,
        fen: str,
        moves: Sequence[Move],
        index: int,
        engine_lines: Sequence[EngineLine] | None = None,
        question: str | None = None,
        first_ply: int = 0,
    ) -> str:
        """Explanation of a position; the fallback message on failure."""
        prompt = build_prompt(fen, moves, index, engine_lines, question, first_ply)
        try:
            return self.ask(prompt)
        except CoachError:
            return FALLBACK_MESSAGE


class ChatSession:
    """One game's conversation with the coach."""

    def __init__(self, coach: ChessCoach, messages: Sequence[ChatMessage] = ()) -> None:
        self._coach = coach
        self.messages: list[ChatMessage] = list(messages)

    def send(
        self,
        question: str,
        fen: str,
        moves: Sequence[Move],
        index: int,
        engine_lines: Sequence[EngineLine] | None = None,
        first_ply: int = 0,
    ) -> ChatMessage:
        """Append the user's question and the coach's reply.

        Returns:
            The assistant message that was appended (the fallback
            message if the backend failed).

        Raises:
            ValueError: If the question is blank.
        """
        if not question or not question.strip():
            raise ValueError("Message is empty")

        history = self.messages[-_HISTORY_TURNS:]
        self.messages.append(ChatMessage(role="user", content=question, timestamp=_now_ms()))

        prompt = build_prompt(fen, moves, index, engine_lines, question, first_ply)
        try:
            content = self._coach.ask(prompt, history=history)
        except CoachError:
            content = FALLBACK_MESSAGE

        reply = ChatMessage(role="assistant", content=content, timestamp=_now_ms())
        self.messages.append(reply)
        return reply
