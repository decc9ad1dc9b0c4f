"""Game and prediction tables."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GameRow(SQLModel, table=True):
    __tablename__ = "games"

    id: str = Field(primary_key=True)
    symbol: str = Field(index=True)

    start_time: datetime
    end_time: datetime = Field(index=True)
    duration: int

    start_price: float
    end_price: Optional[float] = Field(default=None)

    status: str = Field(default="ACTIVE", index=True)
    created_by: str = Field(index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)


class PredictionRow(SQLModel, table=True):
    __tablename__ = "predictions"

    id: str = Field(primary_key=True)
    game_id: str = Field(index=True, foreign_key="games.id")
    user_id: str = Field(index=True)

    direction: str
    confidence: int = Field(default=5)
    accuracy: float = Field(default=0.0)
    prediction_price: Optional[float] = Field(default=None)

    status: str = Field(default="PENDING", index=True)
    is_correct: Optional[bool] = Field(default=None)
    score: int = Field(default=0)
    end_price: Optional[float] = Field(default=None)

    submitted_at: datetime = Field(default_factory=utc_now, index=True)
    resolved_at: Optional[datetime] = Field(default=None, index=True)

    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_predictions_game_user"),
        Index("idx_predictions_user_resolved", "user_id", "resolved_at"),
    )
