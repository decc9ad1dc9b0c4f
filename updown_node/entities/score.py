from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum


class ScoreType(StrEnum):
    PREDICTION_WIN = "prediction_win"
    PREDICTION_ACCURACY = "prediction_accuracy"
    STREAK_BONUS = "streak_bonus"
    SPEED_BONUS = "speed_bonus"
    FIRST_PLAY = "first_play"
    DAILY_BONUS = "daily_bonus"
    WEEKLY_BONUS = "weekly_bonus"
    PENALTY = "penalty"
    ADMIN_ADJUSTMENT = "admin_adjustment"


BONUS_SCORE_TYPES = frozenset({
    ScoreType.PREDICTION_ACCURACY,
    ScoreType.STREAK_BONUS,
    ScoreType.SPEED_BONUS,
    ScoreType.FIRST_PLAY,
    ScoreType.DAILY_BONUS,
    ScoreType.WEEKLY_BONUS,
})


class ScoreStatus(StrEnum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"


@dataclass
class ScoreEntry:
    """Ledger row: points awarded to a user and the running total after the award."""
    id: str
    user_id: str
    points: int
    total_points_after: int
    score_type: ScoreType = ScoreType.PREDICTION_WIN
    game_id: str | None = None
    prediction_id: str | None = None
    multiplier: float = 1.0
    status: ScoreStatus = ScoreStatus.PENDING
    is_correct: bool | None = None
    description: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    confirmed_at: datetime | None = None

    @property
    def final_points(self) -> int:
        if self.multiplier and self.multiplier != 1:
            return round(self.points * self.multiplier)
        return self.points

    @property
    def is_bonus(self) -> bool:
        return self.score_type in BONUS_SCORE_TYPES

    @property
    def is_penalty(self) -> bool:
        return self.score_type == ScoreType.PENALTY or self.points < 0

    def confirm(self, now: datetime | None = None) -> None:
        self.status = ScoreStatus.CONFIRMED
        self.confirmed_at = now or datetime.now(timezone.utc)

    def cancel(self, reason: str | None = None) -> None:
        self.status = ScoreStatus.CANCELLED
        self._append_reason("cancelled", reason)

    def dispute(self, reason: str | None = None) -> None:
        self.status = ScoreStatus.DISPUTED
        self._append_reason("disputed", reason)

    def _append_reason(self, label: str, reason: str | None) -> None:
        if not reason:
            return
        note = f"{label}: {reason}"
        self.description = f"{self.description} [{note}]" if self.description else note
