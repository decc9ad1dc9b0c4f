"""Ranking aggregator: fold confirmed ledger entries into per-period records and rank them."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from updown_node.entities.ranking import (
    AirdropStatus, RankingCursor, RankingPeriod, RankingRecord, period_key, period_start,
)
from updown_node.entities.score import ScoreEntry, ScoreStatus
from updown_node.errors import NotFound
from updown_node.interfaces.ranking_repository import RankingRepository
from updown_node.interfaces.score_repository import ScoreRepository
from updown_node.services.batch import BatchResult
from updown_node.services.locks import KeyedLocks

RANKING_METRICS = ("total_score", "win_count", "best_streak", "current_streak")


def ranking_sort_key(record: RankingRecord) -> tuple:
    # highest score first; ties go to the record created first, then to user id
    return (-record.total_score, record.created_at, record.user_id)


class RankingAggregator:
    def __init__(
        self,
        ranking_repository: RankingRepository,
        score_repository: ScoreRepository,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
        settle_seconds: float = 0.0,
    ):
        self.ranking_repository = ranking_repository
        self.score_repository = score_repository
        self.settle_seconds = settle_seconds
        self.locks = locks if locks is not None else KeyedLocks()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    # ── aggregation ──

    def aggregate_period(self, period: RankingPeriod | str, now: datetime | None = None) -> BatchResult:
        """Fold ledger entries confirmed since the period cursor into ranking records.

        The window closes ``settle_seconds`` before ``now``: a ledger row is stamped
        before its transaction commits, so the newest rows may not be visible yet.
        When a user fails, the cursor stays put and the next pass retries them;
        users already folded skip the rows behind their own watermark.
        """
        period = RankingPeriod(period)
        until = (now or self.clock()) - timedelta(seconds=self.settle_seconds)
        current_key = period_key(period, until)
        result = BatchResult()

        with self.locks.hold(("period", period.value)):
            cursor = self.ranking_repository.get_cursor(period.value)
            if cursor is None:
                cursor = RankingCursor(period, current_key, aggregated_until=period_start(period, until))
            elif cursor.period_key != current_key:
                self.logger.info("Period %s rolled over %s -> %s", period, cursor.period_key, current_key)
                self.reset_period(period, new_key=current_key)
                cursor = RankingCursor(period, current_key, aggregated_until=period_start(period, until))

            since = cursor.aggregated_until
            totals = self.score_repository.sum_points_by_user(confirmed_after=since, confirmed_until=until)
            entries: dict[str, list[ScoreEntry]] = {}
            for entry in self.score_repository.find(
                status=ScoreStatus.CONFIRMED.value, confirmed_after=since, confirmed_until=until,
            ):
                entries.setdefault(entry.user_id, []).append(entry)

            for user_id in sorted(set(totals) | set(entries)):
                result.processed += 1
                try:
                    self.update_user_ranking(
                        user_id, totals.get(user_id, 0), period,
                        entries=entries.get(user_id, ()), since=since, folded_until=until, now=until,
                    )
                    result.succeeded += 1
                except Exception as exc:
                    self.logger.exception("Ranking update failed for user=%s period=%s", user_id, period)
                    self.rollback_repositories()
                    result.record_failure(user_id, exc)

            if result.failed:
                self.logger.warning(
                    "Holding period=%s cursor at %s: %d users failed", period, since, result.failed,
                )
            else:
                cursor.aggregated_until = until
            self.ranking_repository.save_cursor(cursor)

        self.logger.info(
            "Aggregated period=%s key=%s users=%d failed=%d",
            period, current_key, result.processed, result.failed,
        )
        return result

    def update_user_ranking(
        self,
        user_id: str,
        score: int,
        period: RankingPeriod | str,
        *,
        wins: int = 0,
        losses: int = 0,
        entries: Sequence[ScoreEntry] = (),
        since: datetime | None = None,
        folded_until: datetime | None = None,
        now: datetime | None = None,
    ) -> RankingRecord:
        """Increment a user's record for ``period``, creating it on first contact.

        ``score`` is the user's sum over the ledger ``entries`` confirmed after
        ``since``. If the record already folded part of that window, only the
        entries past its watermark count. ``folded_until`` moves the watermark.
        """
        period = RankingPeriod(period)
        now = now or self.clock()
        current_key = period_key(period, now)

        with self.locks.hold((period.value, user_id)):
            record = self.ranking_repository.get(user_id, period.value)
            if record is None:
                record = RankingRecord(
                    user_id=user_id, period=period, period_key=current_key, created_at=now, updated_at=now,
                )
            elif record.period_key != current_key:
                record.reset(current_key)

            watermark = record.aggregated_until
            if watermark is not None and (since is None or watermark > since):
                entries = [e for e in entries if e.confirmed_at is not None and e.confirmed_at > watermark]
                score = sum(e.points for e in entries)

            record.total_score += score
            record.win_count += wins
            record.lose_count += losses
            for entry in entries:
                if entry.is_correct is not None:
                    record.fold_outcome(entry.is_correct)
            if folded_until is not None:
                record.aggregated_until = folded_until
            record.updated_at = now
            self.ranking_repository.save(record)
        return record

    # ── ranking ──

    def recompute_ranks(self, period: RankingPeriod | str) -> list[RankingRecord]:
        period = RankingPeriod(period)
        with self.locks.hold(("period", period.value)):
            records = sorted(self.ranking_repository.find(period.value), key=ranking_sort_key)
            for position, record in enumerate(records, start=1):
                if record.rank:
                    record.previous_rank = record.rank
                record.rank = position
            self.ranking_repository.save_all(records)
        self.logger.info("Recomputed %d ranks for period=%s", len(records), period)
        return records

    def reset_period(self, period: RankingPeriod | str, new_key: str | None = None) -> int:
        """Zero every record of ``period``. Returns how many records were reset."""
        period = RankingPeriod(period)
        new_key = new_key or period_key(period, self.clock())
        records = self.ranking_repository.find(period.value)
        for record in records:
            record.reset(new_key)
        self.ranking_repository.save_all(records)
        self.logger.info("Reset %d ranking records for period=%s key=%s", len(records), period, new_key)
        return len(records)

    def record_airdrop(
        self,
        user_id: str,
        period: RankingPeriod | str,
        status: AirdropStatus,
        amount: float,
        *,
        transaction_hash: str | None = None,
        failure_reason: str | None = None,
    ) -> RankingRecord | None:
        period = RankingPeriod(period)
        with self.locks.hold((period.value, user_id)):
            record = self.ranking_repository.get(user_id, period.value)
            if record is None:
                self.logger.warning("No ranking record for user=%s period=%s", user_id, period)
                return None
            record.airdrop_status = status
            record.airdrop_amount = amount
            record.transaction_hash = transaction_hash
            record.airdrop_failure_reason = failure_reason
            if status == AirdropStatus.FAILED:
                record.airdrop_retry_count += 1
            record.updated_at = self.clock()
            self.ranking_repository.save(record)
        return record

    # ── queries ──

    def get_ranking(
        self,
        period: RankingPeriod | str,
        limit: int = 10,
        offset: int = 0,
        metric: str = "total_score",
    ) -> dict[str, Any]:
        if metric not in RANKING_METRICS:
            raise ValueError(f"unknown ranking metric '{metric}'. Allowed: {', '.join(RANKING_METRICS)}")
        period = RankingPeriod(period)
        records = self.ranking_repository.find(period.value)
        if metric == "total_score":
            records.sort(key=ranking_sort_key)
        else:
            records.sort(key=lambda r: (-getattr(r, metric), -r.total_score, r.created_at, r.user_id))

        page = records[max(0, offset): max(0, offset) + max(1, limit)]
        return {
            "period": period.value,
            "metric": metric,
            "total": len(records),
            "rankings": [
                {
                    "position": max(0, offset) + index,
                    "user_id": record.user_id,
                    "rank": record.rank,
                    "rank_change": record.rank_change,
                    "total_score": record.total_score,
                    "win_count": record.win_count,
                    "lose_count": record.lose_count,
                    "win_rate": record.win_rate,
                    "current_streak": record.current_streak,
                    "best_streak": record.best_streak,
                }
                for index, record in enumerate(page, start=1)
            ],
        }

    def get_user_ranking(self, user_id: str, period: RankingPeriod | str) -> RankingRecord:
        record = self.ranking_repository.get(user_id, RankingPeriod(period).value)
        if record is None:
            raise NotFound("ranking", f"{user_id}/{period}")
        return record

    def rollback_repositories(self) -> None:
        for name, repo in [("ranking", self.ranking_repository),
                           ("score", self.score_repository)]:
            rollback = getattr(repo, "rollback", None)
            if callable(rollback):
                try:
                    rollback()
                except Exception as exc:
                    self.logger.warning("Rollback failed for %s: %s", name, exc)
