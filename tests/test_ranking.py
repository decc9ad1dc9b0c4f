"""Tests for ranking aggregation, rank assignment and ranking queries."""
from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlmodel import Session, SQLModel, create_engine

from updown_node.db.repositories import DBRankingRepository, DBScoreRepository
from updown_node.entities.ranking import (
    AirdropStatus, RankingPeriod, RankingRecord, period_key, period_start,
)
from updown_node.errors import NotFound
from updown_node.services.ranking import RankingAggregator
from updown_node.services.score_ledger import ScoreAccumulator


# a Sunday in ISO week 42
SUNDAY = datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = SUNDAY):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RankingTestCase(unittest.TestCase):
    def setUp(self):
        engine = create_engine("sqlite:///:memory:")
        SQLModel.metadata.create_all(engine)
        self.session = Session(engine)
        self.clock = FakeClock()
        self.rankings_repo = DBRankingRepository(self.session)
        self.scores_repo = DBScoreRepository(self.session)
        self.ledger = ScoreAccumulator(self.scores_repo, clock=self.clock)
        self.aggregator = RankingAggregator(self.rankings_repo, self.scores_repo, clock=self.clock)
        self._seq = 0

    def tearDown(self):
        self.session.close()

    def score(self, user_id: str, points: int) -> None:
        self._seq += 1
        self.clock.advance(seconds=1)
        self.ledger.apply(user_id, points > 0, points, prediction_id=f"P{self._seq}")

    def seed(self, scores: dict[str, int]) -> None:
        base = SUNDAY - timedelta(hours=1)
        for offset, (user_id, total) in enumerate(scores.items()):
            self.rankings_repo.save(RankingRecord(
                user_id=user_id,
                period=RankingPeriod.WEEKLY,
                period_key=period_key(RankingPeriod.WEEKLY, SUNDAY),
                total_score=total,
                created_at=base + timedelta(minutes=offset),
            ))


class TestRecomputeRanks(RankingTestCase):
    def test_ties_go_to_the_earlier_record(self):
        self.seed({"b": 30, "a": 50, "c": 30, "d": 10})

        ranked = self.aggregator.recompute_ranks("weekly")

        self.assertEqual([r.user_id for r in ranked], ["a", "b", "c", "d"])
        self.assertEqual([r.rank for r in ranked], [1, 2, 3, 4])
        self.assertEqual(self.rankings_repo.get("c", "weekly").rank, 3)

    def test_previous_rank_is_kept(self):
        self.seed({"a": 50, "b": 40})
        self.aggregator.recompute_ranks("weekly")

        record = self.rankings_repo.get("b", "weekly")
        record.total_score = 90
        self.rankings_repo.save(record)
        self.aggregator.recompute_ranks("weekly")

        moved = self.rankings_repo.get("b", "weekly")
        self.assertEqual(moved.rank, 1)
        self.assertEqual(moved.previous_rank, 2)
        self.assertEqual(moved.rank_change, 1)
        self.assertEqual(self.rankings_repo.get("a", "weekly").rank_change, -1)


class TestAggregatePeriod(RankingTestCase):
    def test_ledger_entries_are_folded_into_records(self):
        self.score("alice", 120)
        self.score("alice", 110)
        self.score("alice", 0)
        self.score("bob", 100)

        result = self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        self.assertEqual(result.processed, 2)
        self.assertEqual(result.succeeded, 2)
        alice = self.rankings_repo.get("alice", "weekly")
        self.assertEqual(alice.total_score, 230)
        self.assertEqual((alice.win_count, alice.lose_count), (2, 1))
        self.assertEqual((alice.current_streak, alice.best_streak), (0, 2))
        self.assertEqual(alice.period_key, "2026-W42")
        self.assertAlmostEqual(alice.win_rate, 66.67)

    def test_rerunning_without_new_entries_changes_nothing(self):
        self.score("alice", 120)
        self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        result = self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        self.assertEqual(result.processed, 0)
        self.assertEqual(self.rankings_repo.get("alice", "weekly").total_score, 120)

    def test_only_new_entries_are_added(self):
        self.score("alice", 120)
        self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))
        self.score("alice", 100)
        self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        alice = self.rankings_repo.get("alice", "weekly")
        self.assertEqual(alice.total_score, 220)
        self.assertEqual(alice.current_streak, 2)

    def test_period_rollover_resets_records(self):
        self.score("alice", 120)
        self.score("bob", 100)
        self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        self.clock.now = datetime(2026, 10, 19, 0, 5, tzinfo=timezone.utc)
        self.score("alice", 50)
        self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        alice = self.rankings_repo.get("alice", "weekly")
        bob = self.rankings_repo.get("bob", "weekly")
        self.assertEqual(alice.period_key, "2026-W43")
        self.assertEqual(alice.total_score, 50)
        self.assertEqual(bob.period_key, "2026-W43")
        self.assertEqual(bob.total_score, 0)

    def test_all_time_period_never_rolls_over(self):
        self.score("alice", 120)
        self.aggregator.aggregate_period("all", now=self.clock.advance(minutes=1))
        self.clock.now = datetime(2027, 3, 1, tzinfo=timezone.utc)
        self.score("alice", 10)
        self.aggregator.aggregate_period("all", now=self.clock.advance(minutes=1))

        alice = self.rankings_repo.get("alice", "all")
        self.assertEqual(alice.period_key, "all-time")
        self.assertEqual(alice.total_score, 130)

    def test_periods_aggregate_independently(self):
        self.score("alice", 120)
        now = self.clock.advance(minutes=1)
        self.aggregator.aggregate_period("daily", now=now)
        self.aggregator.aggregate_period("monthly", now=now)

        self.assertEqual(self.rankings_repo.get("alice", "daily").total_score, 120)
        self.assertEqual(self.rankings_repo.get("alice", "monthly").total_score, 120)
        self.assertIsNone(self.rankings_repo.get("alice", "weekly"))

    def test_failed_user_is_folded_on_the_next_pass(self):
        self.score("alice", 120)
        self.score("bob", 100)

        save = self.rankings_repo.save
        failures = []

        def flaky_save(record):
            if record.user_id == "alice" and not failures:
                failures.append(record.user_id)
                raise RuntimeError("deadlock detected")
            save(record)

        with patch.object(self.rankings_repo, "save", side_effect=flaky_save):
            first = self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        self.assertEqual((first.succeeded, first.failed), (1, 1))
        self.assertIsNone(self.rankings_repo.get("alice", "weekly"))
        self.assertEqual(self.rankings_repo.get("bob", "weekly").total_score, 100)

        self.score("bob", 50)
        second = self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))
        self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        self.assertEqual(second.failed, 0)
        alice = self.rankings_repo.get("alice", "weekly")
        bob = self.rankings_repo.get("bob", "weekly")
        self.assertEqual((alice.total_score, alice.win_count), (120, 1))
        self.assertEqual((bob.total_score, bob.win_count), (150, 2))

    def test_cursor_holds_while_a_user_fails(self):
        self.score("alice", 120)
        start = self.rankings_repo.get_cursor("weekly")
        self.assertIsNone(start)

        with patch.object(self.rankings_repo, "save", side_effect=RuntimeError("disk full")):
            self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))

        cursor = self.rankings_repo.get_cursor("weekly")
        self.assertEqual(cursor.aggregated_until, period_start("weekly", SUNDAY))

    def test_rollover_clears_the_user_watermark(self):
        self.score("alice", 120)
        self.aggregator.aggregate_period("weekly", now=self.clock.advance(minutes=1))
        self.assertIsNotNone(self.rankings_repo.get("alice", "weekly").aggregated_until)

        self.aggregator.reset_period("weekly", new_key="2026-W43")

        self.assertIsNone(self.rankings_repo.get("alice", "weekly").aggregated_until)


class TestSettleDelay(RankingTestCase):
    def setUp(self):
        super().setUp()
        self.aggregator = RankingAggregator(
            self.rankings_repo, self.scores_repo, clock=self.clock, settle_seconds=30,
        )

    def test_recent_entries_wait_for_the_next_pass(self):
        self.score("alice", 120)

        early = self.aggregator.aggregate_period("weekly", now=self.clock.advance(seconds=10))
        late = self.aggregator.aggregate_period("weekly", now=self.clock.advance(seconds=30))

        self.assertEqual(early.processed, 0)
        self.assertEqual(late.processed, 1)
        self.assertEqual(self.rankings_repo.get("alice", "weekly").total_score, 120)

    def test_entry_committed_after_a_pass_is_not_lost(self):
        stamped_at = self.clock.now
        self.aggregator.aggregate_period("weekly", now=stamped_at + timedelta(seconds=5))

        # the row carries a confirmation time from before the pass above
        self.clock.now = stamped_at
        self.ledger.apply("alice", True, 120, prediction_id="P-late")
        self.aggregator.aggregate_period("weekly", now=stamped_at + timedelta(minutes=1))

        self.assertEqual(self.rankings_repo.get("alice", "weekly").total_score, 120)


class TestUpdateUserRanking(RankingTestCase):
    def test_creates_then_increments(self):
        self.aggregator.update_user_ranking("alice", 100, "daily", wins=1)
        record = self.aggregator.update_user_ranking("alice", 50, "daily", losses=1)

        self.assertEqual(record.total_score, 150)
        self.assertEqual((record.win_count, record.lose_count), (1, 1))


class TestRankingQueries(RankingTestCase):
    def test_get_ranking_by_metric(self):
        self.seed({"a": 50, "b": 40, "c": 30})
        record = self.rankings_repo.get("c", "weekly")
        record.best_streak = 9
        self.rankings_repo.save(record)
        self.aggregator.recompute_ranks("weekly")

        by_score = self.aggregator.get_ranking("weekly", limit=2)
        by_streak = self.aggregator.get_ranking("weekly", metric="best_streak")

        self.assertEqual(by_score["total"], 3)
        self.assertEqual([r["user_id"] for r in by_score["rankings"]], ["a", "b"])
        self.assertEqual(by_streak["rankings"][0]["user_id"], "c")
        self.assertEqual(by_streak["rankings"][0]["rank"], 3)

    def test_get_ranking_offset(self):
        self.seed({"a": 50, "b": 40, "c": 30})
        page = self.aggregator.get_ranking("weekly", limit=5, offset=2)
        self.assertEqual([(r["position"], r["user_id"]) for r in page["rankings"]], [(3, "c")])

    def test_unknown_metric_is_rejected(self):
        with self.assertRaises(ValueError):
            self.aggregator.get_ranking("weekly", metric="karma")

    def test_get_user_ranking(self):
        self.seed({"a": 50})
        self.assertEqual(self.aggregator.get_user_ranking("a", "weekly").total_score, 50)
        with self.assertRaises(NotFound):
            self.aggregator.get_user_ranking("zz", "weekly")

    def test_reset_period(self):
        self.seed({"a": 50, "b": 40})
        self.assertEqual(self.aggregator.reset_period("weekly"), 2)
        self.assertEqual(self.rankings_repo.get("a", "weekly").total_score, 0)

    def test_record_airdrop_mirrors_payout_status(self):
        self.seed({"a": 50})
        self.aggregator.record_airdrop("a", "weekly", AirdropStatus.FAILED, 10_000, failure_reason="timeout")
        self.aggregator.record_airdrop("a", "weekly", AirdropStatus.COMPLETED, 10_000, transaction_hash="0xabc")

        record = self.rankings_repo.get("a", "weekly")
        self.assertEqual(record.airdrop_status, AirdropStatus.COMPLETED)
        self.assertEqual(record.transaction_hash, "0xabc")
        self.assertIsNone(record.airdrop_failure_reason)
        self.assertEqual(record.airdrop_retry_count, 1)
        self.assertIsNone(self.aggregator.record_airdrop("nobody", "weekly", AirdropStatus.COMPLETED, 1))


class TestPeriodKeys(unittest.TestCase):
    def test_keys(self):
        self.assertEqual(period_key("daily", SUNDAY), "2026-10-18")
        self.assertEqual(period_key("weekly", SUNDAY), "2026-W42")
        self.assertEqual(period_key("monthly", SUNDAY), "2026-10")
        self.assertEqual(period_key("all", SUNDAY), "all-time")

    def test_iso_week_year_at_year_boundary(self):
        self.assertEqual(period_key("weekly", datetime(2027, 1, 1, tzinfo=timezone.utc)), "2026-W53")

    def test_period_start(self):
        self.assertEqual(period_start("weekly", SUNDAY), datetime(2026, 10, 12, tzinfo=timezone.utc))
        self.assertEqual(period_start("monthly", SUNDAY), datetime(2026, 10, 1, tzinfo=timezone.utc))
        self.assertEqual(period_start("daily", SUNDAY), datetime(2026, 10, 18, tzinfo=timezone.utc))
        self.assertIsNone(period_start("all", SUNDAY))


if __name__ == "__main__":
    unittest.main()
