from __future__ import annotations

from dataclasses import dataclass
import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RuntimeSettings:
    game_resolution_interval_seconds: int
    ranking_interval_seconds: int
    airdrop_interval_seconds: int
    feed_provider: str
    feed_timeout_seconds: float
    price_cache_ttl_seconds: float
    payout_gateway_url: str
    payout_timeout_seconds: float
    airdrop_dry_run: bool

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            game_resolution_interval_seconds=int(os.getenv("GAME_RESOLUTION_INTERVAL_SECONDS", "10")),
            ranking_interval_seconds=int(os.getenv("RANKING_INTERVAL_SECONDS", "300")),
            airdrop_interval_seconds=int(os.getenv("AIRDROP_INTERVAL_SECONDS", str(7 * 24 * 3600))),
            feed_provider=os.getenv("FEED_PROVIDER", "pyth"),
            feed_timeout_seconds=float(os.getenv("FEED_TIMEOUT_SECONDS", "8")),
            price_cache_ttl_seconds=float(os.getenv("PRICE_CACHE_TTL_SECONDS", "2")),
            payout_gateway_url=os.getenv("PAYOUT_GATEWAY_URL", ""),
            payout_timeout_seconds=float(os.getenv("PAYOUT_TIMEOUT_SECONDS", "30")),
            airdrop_dry_run=_env_bool("AIRDROP_DRY_RUN"),
        )
