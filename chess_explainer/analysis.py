"""Engine analysis orchestration with stale-result protection.

Every analysis request is tagged with a ticket (monotonic id + the FEN
it was issued for). Only the most recent ticket may publish a result:
if the user navigated away while Stockfish was thinking, the late
result is discarded instead of overwriting the newer position.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from chess_explainer.engine import ChessEngine
from chess_explainer.models import EngineEvaluation, EngineLine, EvaluationPoint, GameRecord
from chess_explainer.position import positions

_log = logging.getLogger(__name__)

# Evaluation swing (in pawns) that marks a move as critical
CRITICAL_SWING = 1.0


@dataclass(frozen=True)
class AnalysisTicket:
    request_id: int
    fen: str


class AnalysisSession:
    """Owns one engine client and the latest-request bookkeeping."""

    def __init__(
        self,
        engine: ChessEngine,
        depth: int | None = None,
        multipv: int | None = None,
    ) -> None:
        self._engine = engine
        self._depth = depth
        self._multipv = multipv
        self._next_id = 1
        self._latest: AnalysisTicket | None = None
        self._current: EngineEvaluation | None = None

    @property
    def engine(self) -> ChessEngine:
        return self._engine

    @property
    def current(self) -> EngineEvaluation | None:
        """Result for the most recently requested position, if it has arrived."""
        return self._current

    def request(self, fen: str) -> AnalysisTicket:
        """Issue a ticket for fen; every earlier ticket becomes stale."""
        ticket = AnalysisTicket(request_id=self._next_id, fen=fen)
        self._next_id += 1
        self._latest = ticket
        self._current = None
        return ticket

    def is_current(self, ticket: AnalysisTicket) -> bool:
        return self._latest is not None and ticket.request_id == self._latest.request_id

    def cancel(self) -> None:
        """Abandon whatever is in flight."""
        self._latest = None
        self._current = None

    def resolve(self, ticket: AnalysisTicket, lines: list[EngineLine]) -> EngineEvaluation | None:
        """Publish lines for ticket unless a newer request superseded it.

        Returns:
            The published evaluation, or None if the ticket was stale.
        """
        if not self.is_current(ticket):
            _log.debug("Discarding stale analysis #%d for %s", ticket.request_id, ticket.fen)
            return None
        self._current = EngineEvaluation(fen=ticket.fen, lines=list(lines))
        return self._current

    def analyze(self, fen: str) -> EngineEvaluation | None:
        """Blocking analysis of fen."""
        ticket = self.request(fen)
        lines = self._engine.analyze_position(fen, depth=self._depth, multipv=self._multipv)
        return self.resolve(ticket, lines)

    async def analyze_async(self, fen: str) -> EngineEvaluation | None:
        """Analysis on a worker thread; None if superseded before it finished."""
        ticket = self.request(fen)
        lines = await asyncio.to_thread(
            self._engine.analyze_position, fen, self._depth, self._multipv
        )
        return self.resolve(ticket, lines)

    def evaluate_game(
        self,
        game: GameRecord,
        depth: int | None = None,
        critical_swing: float = CRITICAL_SWING,
    ) -> list[EvaluationPoint]:
        """Evaluation of every main-line position, start included.

        A point is critical when its evaluation differs from the previous
        point by at least critical_swing pawns.
        """
        points: list[EvaluationPoint] = []
        previous: float | None = None
        for offset, fen in enumerate(positions(game.moves, game.starting_fen)):
            value = self._engine.evaluate(fen, depth=depth or self._depth)
            is_critical = previous is not None and abs(value - previous) >= critical_swing
            points.append(EvaluationPoint(index=offset - 1, evaluation=value, is_critical=is_critical))
            previous = value
        return points


def format_engine_lines(lines: list[EngineLine], max_moves: int = 5) -> str:
    """Engine lines as the structured text block used in prompts."""
    blocks = []
    for line in lines:
        best = line.best_move_san or line.best_move or "Unknown"
        pv = " ".join(line.line[:max_moves]) or "Unknown"
        blocks.append(
            f"VARIATION {line.rank}:\n"
            f"  DEPTH: {line.depth}\n"
            f"  EVALUATION: {line.describe()}\n"
            f"  BEST MOVE: {best}\n"
            f"  BEST LINE: {pv}"
        )
    return "\n\n".join(blocks)
