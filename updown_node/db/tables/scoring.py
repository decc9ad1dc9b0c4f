"""Score ledger, ranking and airdrop tables."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScoreEntryRow(SQLModel, table=True):
    __tablename__ = "score_entries"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    game_id: Optional[str] = Field(default=None, index=True)
    prediction_id: Optional[str] = Field(default=None, index=True)

    score_type: str
    points: int
    total_points_after: int
    multiplier: float = Field(default=1.0)
    status: str = Field(default="PENDING", index=True)
    is_correct: Optional[bool] = Field(default=None)
    description: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now, index=True)
    confirmed_at: Optional[datetime] = Field(default=None, index=True)


class RankingRow(SQLModel, table=True):
    __tablename__ = "rankings"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    period: str = Field(index=True)
    period_key: str

    total_score: int = Field(default=0, index=True)
    rank: int = Field(default=0)
    previous_rank: Optional[int] = Field(default=None)
    win_count: int = Field(default=0)
    lose_count: int = Field(default=0)
    current_streak: int = Field(default=0)
    best_streak: int = Field(default=0)

    airdrop_status: str = Field(default="PENDING")
    airdrop_amount: float = Field(default=0.0)
    airdrop_retry_count: int = Field(default=0)
    transaction_hash: Optional[str] = Field(default=None)
    airdrop_failure_reason: Optional[str] = Field(default=None)
    aggregated_until: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "period", name="uq_rankings_user_period"),
        Index("idx_rankings_period_score", "period", "total_score"),
    )


class RankingCursorRow(SQLModel, table=True):
    __tablename__ = "ranking_cursors"

    period: str = Field(primary_key=True)
    period_key: str
    aggregated_until: Optional[datetime] = Field(default=None)


class AirdropRow(SQLModel, table=True):
    __tablename__ = "airdrops"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    period: str = Field(index=True)
    period_key: str = Field(index=True)

    rank: int
    tier: int
    amount: float
    status: str = Field(default="PENDING", index=True)
    transaction_hash: Optional[str] = Field(default=None)
    failure_reason: Optional[str] = Field(default=None)
    retry_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=utc_now, index=True)
    processed_at: Optional[datetime] = Field(default=None)
    claimed_at: Optional[datetime] = Field(default=None, index=True)
