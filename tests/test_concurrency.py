"""Threads and separate sessions against one SQLite file, sharing the engine's keyed locks."""
from __future__ import annotations

import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlmodel import Session, SQLModel

from updown_node.config.runtime import RuntimeSettings
from updown_node.db import create_db_engine
from updown_node.db.repositories import (
    DBAirdropRepository, DBGameRepository, DBPredictionRepository,
)
from updown_node.entities.game import Game, GameStatus, Prediction, PredictionDirection, PredictionStatus
from updown_node.entities.ranking import AirdropRecord, AirdropStatus, RankingPeriod, RankingRecord
from updown_node.feeds.contracts import PriceFeed, PriceSample
from updown_node.game_config import AirdropTier, GameConfig
from updown_node.payouts import PayoutClient
from updown_node.services.locks import KeyedLocks
from updown_node.wiring import Engine, build_engine


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
        self.sent: list[tuple[str, float]] = []
        self._lock = threading.Lock()

    def send_airdrop(self, user_id: str, amount: float) -> str:
        with self._lock:
            self.sent.append((user_id, amount))
            return f"0x{len(self.sent):064x}"


class ProcessKilled(BaseException):
    pass


class DyingPayoutClient(PayoutClient):
    def send_airdrop(self, user_id: str, amount: float) -> str:
        raise ProcessKilled(f"killed while paying {user_id}")


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


class FileDatabaseTestCase(unittest.TestCase):
    config = GameConfig(active_game_policy="per_symbol")

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db = create_db_engine(f"sqlite:///{Path(self.tmp.name) / 'updown.db'}")
        SQLModel.metadata.create_all(self.db)
        self.locks = KeyedLocks()
        self.clock = FakeClock()
        self.feed = StaticPriceFeed({"BTC": 100.0, "ETH": 10.0})
        self.payouts = RecordingPayoutClient()
        self.sessions: list[Session] = []

    def tearDown(self):
        for session in self.sessions:
            session.close()
        self.db.dispose()
        self.tmp.cleanup()

    def session(self) -> Session:
        session = Session(self.db)
        self.sessions.append(session)
        return session

    def node(self, locks: KeyedLocks | None = None, payout_client: PayoutClient | None = None) -> Engine:
        """One engine per thread: its own session, the shared locks."""
        return build_engine(
            self.session(),
            settings=_settings(),
            config=self.config,
            price_feed=self.feed,
            payout_client=payout_client or self.payouts,
            clock=self.clock,
            locks=locks if locks is not None else self.locks,
        )

    def run_together(self, *calls):
        barrier = threading.Barrier(len(calls))
        results = [None] * len(calls)
        errors: list[BaseException] = []

        def runner(index, call):
            barrier.wait()
            try:
                results[index] = call()
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=runner, args=(i, call)) for i, call in enumerate(calls)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        self.assertFalse(any(thread.is_alive() for thread in threads), "worker thread hung")
        self.assertEqual(errors, [])
        return results


class TestConcurrentResolution(FileDatabaseTestCase):
    def open_game(self, symbol: str, *users: str) -> Game:
        setup = self.node()
        game = setup.games.create_game(symbol, 60, "admin")
        self.clock.now += timedelta(seconds=2)
        for user in users:
            setup.games.submit_prediction(game.id, user, "UP", accuracy=100)
        return game

    def test_racing_closes_score_each_prediction_once(self):
        game = self.open_game("BTC", "alice", "bob")
        self.feed.prices["BTC"] = 110.0
        first, second = self.node(), self.node()

        closed = self.run_together(
            lambda: first.games.close_game(game.id),
            lambda: second.games.close_game(game.id),
        )

        self.assertEqual([g.end_price for g in closed], [110.0, 110.0])
        check = self.node()
        for user in ("alice", "bob"):
            self.assertEqual(check.ledger.score_repository.count(user_id=user), 1)
            self.assertEqual(check.ledger.total_for(user), 170)
        predictions = check.games.prediction_repository.find(game_id=game.id)
        self.assertEqual({p.status for p in predictions}, {PredictionStatus.WIN})
        self.assertEqual({p.score for p in predictions}, {170})

    def test_parallel_games_keep_one_users_ledger_chained(self):
        btc = self.open_game("BTC", "alice")
        eth = self.open_game("ETH", "alice")
        self.feed.prices.update({"BTC": 110.0, "ETH": 11.0})
        first, second = self.node(), self.node()

        self.run_together(
            lambda: first.games.close_game(btc.id),
            lambda: second.games.close_game(eth.id),
        )

        check = self.node()
        entries = check.ledger.score_repository.find(user_id="alice")
        self.assertEqual(len(entries), 2)
        # the second resolution saw the first win as a streak
        self.assertEqual(sorted(e.points for e in entries), [170, 180])
        self.assertEqual(sorted(e.total_points_after for e in entries), [170, 350])
        self.assertEqual(check.ledger.total_for("alice"), 350)


class TestConcurrentAirdrops(FileDatabaseTestCase):
    config = GameConfig(airdrop_tiers=[
        AirdropTier(tier=1, size=1, amount=500),
        AirdropTier(tier=2, size=3, amount=50),
    ])

    def setUp(self):
        super().setUp()
        self.clock.now = datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc)
        setup = self.node()
        setup.airdrops.ranking_repository.save_all([
            RankingRecord(
                user_id=f"user{i}", period=RankingPeriod.WEEKLY, period_key="2026-W42",
                total_score=1_000 - i, created_at=START,
            )
            for i in range(4)
        ])
        setup.rankings.recompute_ranks("weekly")

    def test_racing_runs_pay_each_user_once(self):
        first, second = self.node(), self.node()

        self.run_together(
            lambda: first.airdrops.execute("weekly"),
            lambda: second.airdrops.execute("weekly"),
        )

        self.assertEqual(
            sorted(self.payouts.sent),
            [("user0", 500), ("user1", 50), ("user2", 50), ("user3", 50)],
        )
        stored = self.node().airdrops.airdrop_repository.find(period="weekly")
        self.assertEqual(len(stored), 4)
        self.assertEqual({r.status for r in stored}, {AirdropStatus.COMPLETED})

    def test_claim_left_by_a_dead_run_is_reconciled_by_another(self):
        dead = self.node(locks=KeyedLocks(), payout_client=DyingPayoutClient())
        with self.assertRaises(ProcessKilled):
            dead.airdrops.execute("weekly")
        airdrop_id = AirdropRecord.make_id("weekly", "2026-W42", "user0")
        self.assertEqual(dead.airdrops.airdrop_repository.get(airdrop_id).status, AirdropStatus.PROCESSING)

        survivor = self.node()
        first = survivor.airdrops.execute("weekly")
        self.assertEqual((first["successful"], first["skipped"]), (3, 1))

        self.clock.now += timedelta(seconds=self.config.airdrop_claim_timeout_seconds + 1)
        with self.assertLogs("updown_node.services.airdrop", level="ERROR"):
            parked = survivor.airdrops.release_stale_claims()
        self.assertEqual([p["airdrop_id"] for p in parked], [airdrop_id])

        survivor.airdrops.confirm_payout(airdrop_id)
        retried = survivor.airdrops.retry(airdrop_id)

        self.assertTrue(retried["success"])
        self.assertEqual(sorted(self.payouts.sent), [("user0", 500), ("user1", 50), ("user2", 50), ("user3", 50)])


class TestStateChangesAcrossSessions(FileDatabaseTestCase):
    def test_only_one_session_wins_each_transition(self):
        games_a, games_b = DBGameRepository(self.session()), DBGameRepository(self.session())
        games_a.save(Game(
            id="GAM_1", symbol="BTC", start_time=START, end_time=START + timedelta(seconds=60),
            duration=60, start_price=100.0, created_by="admin",
        ))
        self.assertTrue(games_a.transition("GAM_1", expected=GameStatus.ACTIVE, new=GameStatus.COMPLETED))
        self.assertFalse(games_b.transition("GAM_1", expected=GameStatus.ACTIVE, new=GameStatus.CANCELLED))
        self.assertEqual(games_b.get("GAM_1").status, GameStatus.COMPLETED)

        predictions_a = DBPredictionRepository(self.session())
        predictions_b = DBPredictionRepository(self.session())
        prediction = Prediction(
            id="PRD_1", game_id="GAM_1", user_id="alice", direction=PredictionDirection.UP,
            submitted_at=START,
        )
        predictions_a.save(prediction)
        prediction.status = PredictionStatus.WIN
        prediction.score = 120
        self.assertTrue(predictions_a.mark_resolved(prediction))
        prediction.score = 999
        self.assertFalse(predictions_b.mark_resolved(prediction))
        self.assertEqual(predictions_b.get("PRD_1").score, 120)

        airdrops_a, airdrops_b = DBAirdropRepository(self.session()), DBAirdropRepository(self.session())
        airdrops_a.save(AirdropRecord(
            id="AIR_1", user_id="alice", period=RankingPeriod.WEEKLY, period_key="2026-W42",
            rank=1, tier=1, amount=500,
        ))
        self.assertTrue(airdrops_a.claim("AIR_1", expected=(AirdropStatus.PENDING,)))
        self.assertFalse(airdrops_b.claim("AIR_1", expected=(AirdropStatus.PENDING,)))


if __name__ == "__main__":
    unittest.main()
