"""GameConfig: single source of truth for scoring rules, reward tiers and policies.

Operators customize the engine by subclassing or instantiating ``GameConfig``
in their own module and pointing ``GAME_CONFIG_MODULE`` at it (see
``updown_node.config_loader``).
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class ScoringRules(BaseModel):
    """Points awarded to a correct prediction. Incorrect predictions score 0."""

    base_points: int = 100
    accuracy_weight: float = 0.5
    accuracy_bonus_cap: float = 50.0
    speed_bonus: int = 20
    speed_threshold_ms: int = 5000
    streak_step: int = 10
    streak_bonus_cap: int = 100


class AirdropTier(BaseModel):
    """A contiguous rank range paid a flat amount per user."""

    tier: int = Field(ge=1)
    size: int = Field(ge=1)
    amount: float = Field(ge=0)


def default_airdrop_tiers() -> list[AirdropTier]:
    return [
        AirdropTier(tier=1, size=1, amount=10_000),
        AirdropTier(tier=2, size=50, amount=1_000),
        AirdropTier(tier=3, size=500, amount=100),
        AirdropTier(tier=4, size=1_000, amount=10),
    ]


class GameConfig(BaseModel):
    scoring: ScoringRules = Field(default_factory=ScoringRules)
    airdrop_tiers: list[AirdropTier] = Field(default_factory=default_airdrop_tiers)

    # "event": one immutable ledger row per scoring event.
    # "legacy": one mutable row per user whose points hold the latest delta.
    ledger_mode: Literal["event", "legacy"] = "event"

    # "global": opening a game force-closes every active game, whatever the symbol.
    active_game_policy: Literal["global", "per_symbol"] = "global"

    default_game_duration_seconds: int = Field(default=60, ge=1)
    airdrop_period: Literal["daily", "weekly", "monthly", "all"] = "weekly"
    airdrop_max_retries: int = Field(default=3, ge=0)
    # PROCESSING payouts older than this are parked as UNCONFIRMED for reconciliation
    airdrop_claim_timeout_seconds: int = Field(default=900, ge=1)

    # ledger rows younger than this are left to the next ranking pass
    ranking_settle_seconds: float = Field(default=5.0, ge=0)

    @model_validator(mode="after")
    def _tiers_are_ordered(self) -> "GameConfig":
        numbers = [t.tier for t in self.airdrop_tiers]
        if numbers != sorted(set(numbers)):
            raise ValueError("airdrop_tiers must have unique tier numbers in ascending order")
        return self

    @property
    def eligible_count(self) -> int:
        return sum(t.size for t in self.airdrop_tiers)

    def tier_for_rank(self, rank: int) -> AirdropTier | None:
        """Tier for a 1-based rank position, or None when the rank is not paid."""
        if rank < 1:
            return None
        upper = 0
        for tier in self.airdrop_tiers:
            upper += tier.size
            if rank <= upper:
                return tier
        return None

    def tier_offsets(self, tier_number: int) -> tuple[int, int]:
        """(offset, limit) of a tier inside the ranked list."""
        offset = 0
        for tier in self.airdrop_tiers:
            if tier.tier == tier_number:
                return offset, tier.size
            offset += tier.size
        raise ValueError(f"unknown airdrop tier: {tier_number}")
