"""Ranking worker: folds new ledger entries into every period and re-ranks."""
from __future__ import annotations

import asyncio
import logging

from updown_node.config.runtime import RuntimeSettings
from updown_node.db import create_session
from updown_node.entities.ranking import RankingPeriod
from updown_node.services.ranking import RankingAggregator
from updown_node.wiring import build_engine


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


class RankingService:
    def __init__(
        self,
        aggregator: RankingAggregator,
        interval_seconds: int = 300,
        periods: tuple[RankingPeriod, ...] = tuple(RankingPeriod),
    ):
        self.aggregator = aggregator
        self.interval_seconds = interval_seconds
        self.periods = periods
        self.logger = logging.getLogger(__name__)
        self.stop_event = asyncio.Event()

    async def run(self) -> None:
        self.logger.info("ranking worker started (interval=%ds)", self.interval_seconds)
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.logger.exception("ranking loop error: %s", exc)
                self.aggregator.rollback_repositories()
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def run_once(self) -> dict[str, int]:
        updated: dict[str, int] = {}
        for period in self.periods:
            result = self.aggregator.aggregate_period(period)
            self.aggregator.recompute_ranks(period)
            updated[period.value] = result.succeeded
        return updated

    async def shutdown(self) -> None:
        self.stop_event.set()


def build_service() -> RankingService:
    settings = RuntimeSettings.from_env()
    engine = build_engine(create_session(), settings=settings)
    return RankingService(
        aggregator=engine.rankings,
        interval_seconds=settings.ranking_interval_seconds,
    )


async def main() -> None:
    configure_logging()
    logging.getLogger(__name__).info("updown ranking worker bootstrap")
    service = build_service()
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
