import asyncio
import unittest
from datetime import datetime, timedelta, timezone

from sqlmodel import Session, SQLModel, create_engine

from updown_node.config.runtime import RuntimeSettings
from updown_node.entities.game import GameStatus
from updown_node.entities.ranking import AirdropRecord, AirdropStatus, RankingPeriod, period_key
from updown_node.feeds.caching import CachingPriceFeed
from updown_node.feeds.contracts import PriceFeed, PriceSample
from updown_node.feeds.expiring_store import ExpiringStore
from updown_node.game_config import GameConfig
from updown_node.payouts import PayoutClient
from updown_node.workers import airdrop_worker, ranking_worker, resolution_worker
from updown_node.workers.airdrop_worker import AirdropService
from updown_node.workers.ranking_worker import RankingService
from updown_node.workers.resolution_worker import ResolutionService
from updown_node.wiring import build_engine


START = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class StaticPriceFeed(PriceFeed):
    def __init__(self, prices: dict[str, float]):
        self.prices = prices

    def current_price(self, symbol: str) -> PriceSample | None:
        price = self.prices.get(symbol)
        return PriceSample(symbol=symbol, price=price) if price is not None else None


class RecordingPayoutClient(PayoutClient):
    def __init__(self):
        self.sent = []

    def send_airdrop(self, user_id: str, amount: float) -> str:
        self.sent.append((user_id, amount))
        return f"0x{len(self.sent):064x}"


def _settings() -> RuntimeSettings:
    return RuntimeSettings(
        game_resolution_interval_seconds=1,
        ranking_interval_seconds=1,
        airdrop_interval_seconds=1,
        feed_provider="pyth",
        feed_timeout_seconds=1,
        price_cache_ttl_seconds=0,
        payout_gateway_url="",
        payout_timeout_seconds=1,
        airdrop_dry_run=False,
    )


class WorkerTestCase(unittest.TestCase):
    def setUp(self):
        db = create_engine("sqlite:///:memory:")
        SQLModel.metadata.create_all(db)
        self.session = Session(db)
        self.clock = FakeClock()
        self.feed = StaticPriceFeed({"BTC": 100.0, "ETH": 10.0})
        self.payouts = RecordingPayoutClient()
        self.engine = build_engine(
            self.session,
            settings=_settings(),
            config=GameConfig(active_game_policy="per_symbol"),
            price_feed=self.feed,
            payout_client=self.payouts,
            clock=self.clock,
        )

    def tearDown(self):
        self.session.close()

    def play_one_game(self) -> str:
        game = self.engine.games.create_game("BTC", 60)
        self.clock.now += timedelta(seconds=1)
        self.engine.games.submit_prediction(game.id, "alice", "UP")
        self.engine.games.submit_prediction(game.id, "bob", "DOWN")
        self.clock.now += timedelta(seconds=60)
        self.feed.prices["BTC"] = 110.0
        return game.id

    def resolve_and_settle(self) -> None:
        ResolutionService(self.engine.games).run_once()
        self.clock.now += timedelta(seconds=self.engine.config.ranking_settle_seconds + 1)


class TestResolutionService(WorkerTestCase):
    def test_run_once_closes_due_games_only(self):
        due = self.play_one_game()
        pending = self.engine.games.create_game("ETH", 600)
        service = ResolutionService(self.engine.games, interval_seconds=1)

        result = service.run_once()

        self.assertEqual((result.processed, result.succeeded), (1, 1))
        self.assertEqual(self.engine.games.get_game(due).status, GameStatus.COMPLETED)
        self.assertEqual(self.engine.games.get_game(pending.id).status, GameStatus.ACTIVE)

    def test_run_once_sweeps_price_cache(self):
        clock = [0.0]
        cache = CachingPriceFeed(self.feed, store=ExpiringStore(ttl_seconds=1, clock=lambda: clock[0]))
        cache.current_price("BTC")
        clock[0] = 5.0
        service = ResolutionService(self.engine.games, price_cache=cache, interval_seconds=1)

        service.run_once()

        self.assertEqual(len(cache.store), 0)

    def test_loop_survives_errors_and_stops(self):
        service = ResolutionService(self.engine.games, interval_seconds=0)
        calls = []
        rollbacks = []

        def failing_run_once():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("db went away")
            service.stop_event.set()

        service.run_once = failing_run_once
        service.game_manager.rollback_repositories = lambda: rollbacks.append(1)

        with self.assertLogs("updown_node.workers.resolution_worker", level="ERROR"):
            asyncio.run(asyncio.wait_for(service.run(), timeout=5))

        self.assertEqual(len(calls), 2)
        self.assertEqual(len(rollbacks), 1)


class TestRankingService(WorkerTestCase):
    def test_run_once_aggregates_every_period(self):
        self.play_one_game()
        self.resolve_and_settle()
        service = RankingService(self.engine.rankings, interval_seconds=1)

        updated = service.run_once()

        self.assertEqual(set(updated), {p.value for p in RankingPeriod})
        self.assertTrue(all(count == 2 for count in updated.values()))
        alice = self.engine.rankings.get_user_ranking("alice", "weekly")
        self.assertEqual(alice.rank, 1)
        self.assertEqual(alice.win_count, 1)
        self.assertEqual(self.engine.rankings.get_user_ranking("bob", "daily").lose_count, 1)

    def test_shutdown_stops_loop(self):
        service = RankingService(self.engine.rankings, interval_seconds=60)

        async def run_and_stop():
            task = asyncio.create_task(service.run())
            await asyncio.sleep(0)
            await service.shutdown()
            await asyncio.wait_for(task, timeout=5)

        asyncio.run(run_and_stop())
        self.assertTrue(service.stop_event.is_set())


class TestAirdropService(WorkerTestCase):
    def test_run_once_pays_ranked_winners(self):
        self.play_one_game()
        self.resolve_and_settle()
        service = AirdropService(self.engine.airdrops, self.engine.rankings, period="weekly", interval_seconds=1)

        summary = service.run_once()

        self.assertEqual(summary["successful"], 1)
        self.assertEqual(self.payouts.sent, [("alice", 10_000)])

    def test_run_once_parks_stale_claims_before_paying(self):
        self.play_one_game()
        self.resolve_and_settle()
        service = AirdropService(self.engine.airdrops, self.engine.rankings, period="weekly", interval_seconds=1)
        repo = self.engine.airdrops.airdrop_repository
        key = period_key("weekly", self.clock.now)
        stuck = AirdropRecord(
            id=AirdropRecord.make_id("weekly", key, "alice"),
            user_id="alice", period=RankingPeriod.WEEKLY, period_key=key,
            rank=1, tier=1, amount=10_000,
            status=AirdropStatus.PROCESSING, claimed_at=self.clock.now - timedelta(hours=1),
        )
        repo.save(stuck)

        with self.assertLogs("updown_node.workers.airdrop_worker", level="WARNING"):
            summary = service.run_once()

        self.assertEqual(repo.get(stuck.id).status, AirdropStatus.UNCONFIRMED)
        self.assertEqual(summary["skipped"], 1)
        self.assertEqual(self.payouts.sent, [])

    def test_dry_run_pays_nothing(self):
        self.play_one_game()
        self.resolve_and_settle()
        service = AirdropService(
            self.engine.airdrops, self.engine.rankings, period="weekly", interval_seconds=1, dry_run=True,
        )

        summary = service.run_once()

        self.assertTrue(summary["dry_run"])
        self.assertEqual(summary["total_users"], 1)
        self.assertEqual(self.payouts.sent, [])


class TestBuildService(unittest.TestCase):
    def test_workers_build_their_services(self):
        self.assertIsInstance(resolution_worker.build_service(), ResolutionService)
        self.assertIsInstance(ranking_worker.build_service(), RankingService)
        service = airdrop_worker.build_service()
        self.assertIsInstance(service, AirdropService)
        self.assertEqual(service.period, RankingPeriod.WEEKLY)


if __name__ == "__main__":
    unittest.main()
