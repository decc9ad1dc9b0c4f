"""Prediction resolution: correctness, score and a single write per prediction."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from updown_node.entities.game import (
    Game, Prediction, PredictionDirection, PredictionStatus,
)
from updown_node.errors import InvalidGameState
from updown_node.game_config import ScoringRules
from updown_node.interfaces.prediction_repository import PredictionRepository
from updown_node.services.locks import KeyedLocks
from updown_node.services.score_ledger import ScoreAccumulator


@dataclass(frozen=True)
class ScoreBreakdown:
    base: int = 0
    accuracy_bonus: float = 0.0
    speed_bonus: int = 0
    streak_bonus: int = 0

    @property
    def total(self) -> int:
        return int(round(self.base + self.accuracy_bonus + self.speed_bonus + self.streak_bonus))


def is_prediction_correct(direction: PredictionDirection, start_price: float, end_price: float) -> bool:
    # a flat price is a loss for both directions
    if direction == PredictionDirection.UP:
        return end_price > start_price
    return end_price < start_price


def compute_score(
    is_correct: bool,
    accuracy: float,
    speed_ms: float,
    streak: int,
    rules: ScoringRules | None = None,
) -> ScoreBreakdown:
    """Points for one prediction. Incorrect predictions score nothing."""
    if not is_correct:
        return ScoreBreakdown()
    rules = rules or ScoringRules()
    accuracy_bonus = min(max(accuracy, 0.0) * rules.accuracy_weight, rules.accuracy_bonus_cap)
    speed_bonus = rules.speed_bonus if speed_ms < rules.speed_threshold_ms else 0
    streak_bonus = min(max(streak, 0) * rules.streak_step, rules.streak_bonus_cap)
    return ScoreBreakdown(
        base=rules.base_points,
        accuracy_bonus=accuracy_bonus,
        speed_bonus=speed_bonus,
        streak_bonus=streak_bonus,
    )


class PredictionResolver:
    def __init__(
        self,
        prediction_repository: PredictionRepository,
        score_accumulator: ScoreAccumulator,
        rules: ScoringRules | None = None,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.prediction_repository = prediction_repository
        self.score_accumulator = score_accumulator
        self.rules = rules or ScoringRules()
        self.locks = locks if locks is not None else KeyedLocks()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    def resolve(self, prediction: Prediction, game: Game) -> Prediction:
        if prediction.is_resolved:
            return prediction
        if game.end_price is None:
            raise InvalidGameState(f"game {game.id} has no end price yet")

        # streaks read the user's previous outcomes, so resolutions of one user run one at a time
        with self.locks.hold(("user", prediction.user_id)):
            is_correct = is_prediction_correct(prediction.direction, game.start_price, game.end_price)
            streak = self.current_streak(prediction.user_id) if is_correct else 0
            breakdown = compute_score(
                is_correct,
                accuracy=prediction.accuracy,
                speed_ms=self._speed_ms(prediction, game),
                streak=streak,
                rules=self.rules,
            )

            # ledger first: a prediction left PENDING is re-resolved later, a ledger entry
            # keyed by the prediction is never written twice
            entry = self.score_accumulator.apply(
                prediction.user_id,
                is_correct,
                breakdown.total,
                game_id=game.id,
                prediction_id=prediction.id,
            )

            prediction.is_correct = is_correct
            prediction.status = PredictionStatus.WIN if is_correct else PredictionStatus.LOSE
            prediction.score = entry.points
            prediction.end_price = game.end_price
            prediction.resolved_at = self.clock()

            if not self.prediction_repository.mark_resolved(prediction):
                stored = self.prediction_repository.get(prediction.id)
                self.logger.debug("Prediction %s already resolved", prediction.id)
                return stored or prediction

        self.logger.info(
            "Resolved prediction %s user=%s direction=%s correct=%s score=%d",
            prediction.id, prediction.user_id, prediction.direction, is_correct, prediction.score,
        )
        return prediction

    def current_streak(self, user_id: str) -> int:
        """Consecutive wins immediately before the prediction being resolved."""
        limit = max(1, -(-self.rules.streak_bonus_cap // max(self.rules.streak_step, 1)))
        streak = 0
        for previous in self.prediction_repository.find_resolved(user_id, limit=limit):
            if previous.status != PredictionStatus.WIN:
                break
            streak += 1
        return streak

    @staticmethod
    def _speed_ms(prediction: Prediction, game: Game) -> float:
        return (prediction.submitted_at - game.start_time).total_seconds() * 1000
