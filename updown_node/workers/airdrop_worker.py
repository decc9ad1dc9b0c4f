"""Airdrop worker: pays the ranked users of the configured period, then retries failures."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from updown_node.config.runtime import RuntimeSettings
from updown_node.db import create_session
from updown_node.entities.ranking import RankingPeriod
from updown_node.services.airdrop import AirdropDistributor
from updown_node.services.ranking import RankingAggregator
from updown_node.wiring import build_engine


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


class AirdropService:
    def __init__(
        self,
        distributor: AirdropDistributor,
        aggregator: RankingAggregator,
        period: RankingPeriod | str = RankingPeriod.WEEKLY,
        interval_seconds: int = 7 * 24 * 3600,  # weekly
        dry_run: bool = False,
    ):
        self.distributor = distributor
        self.aggregator = aggregator
        self.period = RankingPeriod(period)
        self.interval_seconds = interval_seconds
        self.dry_run = dry_run
        self.logger = logging.getLogger(__name__)
        self.stop_event = asyncio.Event()

    async def run(self) -> None:
        self.logger.info(
            "airdrop worker started (period=%s, interval=%ds, dry_run=%s)",
            self.period, self.interval_seconds, self.dry_run,
        )
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.logger.exception("airdrop loop error: %s", exc)
                self.distributor.rollback_repositories()
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def run_once(self) -> dict[str, Any]:
        self.aggregator.aggregate_period(self.period)
        self.aggregator.recompute_ranks(self.period)
        if not self.dry_run:
            parked = self.distributor.release_stale_claims()
            if parked:
                self.logger.warning("Parked %d stale airdrop claims for reconciliation", len(parked))

        summary = self.distributor.execute(self.period, dry_run=self.dry_run)
        if self.dry_run:
            self.logger.info(
                "Dry run: %d users, total %s, breakdown %s",
                summary["total_users"], summary["total_amount"], summary["breakdown"],
            )
            return summary

        retried = self.distributor.retry_failed(self.period)
        if retried:
            self.logger.info(
                "Retried %d failed airdrops, %d succeeded",
                len(retried), sum(1 for r in retried if r.get("success")),
            )
        return summary

    async def shutdown(self) -> None:
        self.stop_event.set()


def build_service() -> AirdropService:
    settings = RuntimeSettings.from_env()
    engine = build_engine(create_session(), settings=settings)
    return AirdropService(
        distributor=engine.airdrops,
        aggregator=engine.rankings,
        period=engine.config.airdrop_period,
        interval_seconds=settings.airdrop_interval_seconds,
        dry_run=settings.airdrop_dry_run,
    )


async def main() -> None:
    configure_logging()
    logging.getLogger(__name__).info("updown airdrop worker bootstrap")
    service = build_service()
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
