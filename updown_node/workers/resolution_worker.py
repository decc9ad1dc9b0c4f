"""Resolution worker: closes games whose end time has passed."""
from __future__ import annotations

import asyncio
import logging

from updown_node.config.runtime import RuntimeSettings
from updown_node.db import create_session
from updown_node.feeds.caching import CachingPriceFeed
from updown_node.services.batch import BatchResult
from updown_node.services.game import GameLifecycleManager
from updown_node.wiring import build_engine


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


class ResolutionService:
    def __init__(
        self,
        game_manager: GameLifecycleManager,
        price_cache: CachingPriceFeed | None = None,
        interval_seconds: int = 10,
    ):
        self.game_manager = game_manager
        self.price_cache = price_cache
        self.interval_seconds = interval_seconds
        self.logger = logging.getLogger(__name__)
        self.stop_event = asyncio.Event()

    async def run(self) -> None:
        self.logger.info("resolution worker started (interval=%ds)", self.interval_seconds)
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.logger.exception("resolution loop error: %s", exc)
                self.game_manager.rollback_repositories()
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def run_once(self) -> BatchResult:
        result = self.game_manager.end_active_games(due_only=True)
        if result.processed:
            self.logger.info(
                "Closed %d/%d due games (deferred=%d, failed=%d)",
                result.succeeded, result.processed, result.deferred, result.failed,
            )
        if self.price_cache is not None:
            self.price_cache.sweep()
        return result

    async def shutdown(self) -> None:
        self.stop_event.set()


def build_service() -> ResolutionService:
    settings = RuntimeSettings.from_env()
    engine = build_engine(create_session(), settings=settings)
    price_cache = engine.price_feed if isinstance(engine.price_feed, CachingPriceFeed) else None
    return ResolutionService(
        game_manager=engine.games,
        price_cache=price_cache,
        interval_seconds=settings.game_resolution_interval_seconds,
    )


async def main() -> None:
    configure_logging()
    logging.getLogger(__name__).info("updown resolution worker bootstrap")
    service = build_service()
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
