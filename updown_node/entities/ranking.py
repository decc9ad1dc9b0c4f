from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum


class RankingPeriod(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL = "all"


class AirdropStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    # claimed, but whether the payout went out is not known
    UNCONFIRMED = "UNCONFIRMED"


def period_key(period: RankingPeriod | str, at: datetime | None = None) -> str:
    """Identify the window a period currently accumulates, e.g. ``2026-W42``."""
    at = at or datetime.now(timezone.utc)
    period = RankingPeriod(period)
    if period == RankingPeriod.DAILY:
        return at.strftime("%Y-%m-%d")
    if period == RankingPeriod.WEEKLY:
        year, week, _ = at.isocalendar()
        return f"{year}-W{week:02d}"
    if period == RankingPeriod.MONTHLY:
        return at.strftime("%Y-%m")
    return "all-time"


def period_start(period: RankingPeriod | str, at: datetime | None = None) -> datetime | None:
    """First instant of the window ``period_key`` names; None for all-time."""
    at = (at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    period = RankingPeriod(period)
    midnight = at.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == RankingPeriod.DAILY:
        return midnight
    if period == RankingPeriod.WEEKLY:
        return midnight - timedelta(days=midnight.weekday())
    if period == RankingPeriod.MONTHLY:
        return midnight.replace(day=1)
    return None


@dataclass
class RankingRecord:
    """A user's aggregated score and rank for one period."""
    user_id: str
    period: RankingPeriod
    period_key: str
    total_score: int = 0
    rank: int = 0
    previous_rank: int | None = None
    win_count: int = 0
    lose_count: int = 0
    current_streak: int = 0
    best_streak: int = 0
    airdrop_status: AirdropStatus = AirdropStatus.PENDING
    airdrop_amount: float = 0.0
    airdrop_retry_count: int = 0
    transaction_hash: str | None = None
    airdrop_failure_reason: str | None = None
    # ledger rows confirmed up to here are already in total_score
    aggregated_until: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_games(self) -> int:
        return self.win_count + self.lose_count

    @property
    def win_rate(self) -> float:
        if self.total_games == 0:
            return 0.0
        return round(self.win_count / self.total_games * 100, 2)

    @property
    def rank_change(self) -> int:
        """Positive when the user moved up since the previous ranking pass."""
        if not self.previous_rank:
            return 0
        return self.previous_rank - self.rank

    def fold_outcome(self, is_correct: bool) -> None:
        if is_correct:
            self.win_count += 1
            self.current_streak += 1
            self.best_streak = max(self.best_streak, self.current_streak)
        else:
            self.lose_count += 1
            self.current_streak = 0

    def reset(self, new_period_key: str) -> None:
        self.period_key = new_period_key
        self.total_score = 0
        self.rank = 0
        self.previous_rank = None
        self.win_count = 0
        self.lose_count = 0
        self.current_streak = 0
        self.best_streak = 0
        self.airdrop_status = AirdropStatus.PENDING
        self.airdrop_amount = 0.0
        self.airdrop_retry_count = 0
        self.transaction_hash = None
        self.airdrop_failure_reason = None
        self.aggregated_until = None


@dataclass
class RankingCursor:
    """High-water mark of ledger rows already folded into a period."""
    period: RankingPeriod
    period_key: str
    aggregated_until: datetime | None = None


@dataclass
class AirdropRecord:
    """One payout for one user in one period window. ``id`` is the retry handle."""
    id: str
    user_id: str
    period: RankingPeriod
    period_key: str
    rank: int
    tier: int
    amount: float
    status: AirdropStatus = AirdropStatus.PENDING
    transaction_hash: str | None = None
    failure_reason: str | None = None
    retry_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: datetime | None = None
    claimed_at: datetime | None = None

    @staticmethod
    def make_id(period: str, key: str, user_id: str) -> str:
        return f"AIR_{period}_{key}_{user_id}"
