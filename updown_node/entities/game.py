from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum


class GameStatus(StrEnum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PredictionDirection(StrEnum):
    UP = "UP"
    DOWN = "DOWN"


class PredictionStatus(StrEnum):
    PENDING = "PENDING"
    WIN = "WIN"
    LOSE = "LOSE"


@dataclass
class Game:
    """One timed round for a symbol, bounded by a start and an end price sample."""
    id: str
    symbol: str
    start_time: datetime
    end_time: datetime
    duration: int                                                # seconds
    start_price: float
    created_by: str
    status: GameStatus = GameStatus.ACTIVE
    end_price: float | None = None                               # set once, on ACTIVE -> COMPLETED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.status == GameStatus.ACTIVE


@dataclass
class Prediction:
    """A user's UP/DOWN call on a game. Resolved exactly once when the game closes."""
    id: str
    game_id: str
    user_id: str
    direction: PredictionDirection
    confidence: int = 5
    accuracy: float = 0.0                                        # 0-100, feeds the accuracy bonus
    prediction_price: float | None = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: PredictionStatus = PredictionStatus.PENDING
    is_correct: bool | None = None
    score: int = 0
    end_price: float | None = None
    resolved_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status in (PredictionStatus.WIN, PredictionStatus.LOSE)
