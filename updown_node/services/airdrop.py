"""Airdrop distributor: tier the ranked users of a period and pay them once."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from updown_node.entities.ranking import (
    AirdropRecord, AirdropStatus, RankingPeriod, period_key, period_start,
)
from updown_node.errors import NotFound
from updown_node.game_config import GameConfig
from updown_node.interfaces.airdrop_repository import AirdropRepository
from updown_node.interfaces.ranking_repository import RankingRepository
from updown_node.payouts import PayoutClient
from updown_node.services.locks import KeyedLocks
from updown_node.services.ranking import RankingAggregator, ranking_sort_key


@dataclass
class EligibleUser:
    user_id: str
    rank: int
    tier: int
    score: int
    amount: float


class AirdropDistributor:
    def __init__(
        self,
        ranking_aggregator: RankingAggregator,
        ranking_repository: RankingRepository,
        airdrop_repository: AirdropRepository,
        payout_client: PayoutClient,
        config: GameConfig | None = None,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.ranking_aggregator = ranking_aggregator
        self.ranking_repository = ranking_repository
        self.airdrop_repository = airdrop_repository
        self.payout_client = payout_client
        self.config = config or GameConfig()
        self.locks = locks if locks is not None else KeyedLocks()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    @property
    def max_retries(self) -> int:
        return self.config.airdrop_max_retries

    def get_eligible(
        self, period: RankingPeriod | str | None = None, rank_filter: int | str | None = None,
    ) -> list[EligibleUser]:
        """Paid users of ``period`` in rank order, optionally restricted to one tier."""
        period = RankingPeriod(period or self.config.airdrop_period)
        records = sorted(
            (r for r in self.ranking_repository.find(period.value) if r.total_score > 0),
            key=ranking_sort_key,
        )

        offset, limit = 0, self.config.eligible_count
        if rank_filter not in (None, "all"):
            offset, limit = self.config.tier_offsets(int(rank_filter))

        eligible: list[EligibleUser] = []
        for position, record in enumerate(records[offset:offset + limit], start=offset + 1):
            tier = self.config.tier_for_rank(position)
            if tier is None:
                break
            eligible.append(EligibleUser(
                user_id=record.user_id,
                rank=position,
                tier=tier.tier,
                score=record.total_score,
                amount=tier.amount,
            ))
        return eligible

    def execute(self, period: RankingPeriod | str | None = None, dry_run: bool = False) -> dict[str, Any]:
        """Pay the ranked users of the current window.

        The first run of a window stores one payout per eligible user. Later runs
        settle those payouts only, so ranks that change mid-window never add
        recipients.
        """
        period = RankingPeriod(period or self.config.airdrop_period)

        if dry_run:
            eligible = self.get_eligible(period)
            return {
                "dry_run": True,
                "period": period.value,
                "total_users": len(eligible),
                "total_amount": sum(user.amount for user in eligible),
                "breakdown": {
                    f"tier_{tier.tier}": sum(1 for user in eligible if user.tier == tier.tier)
                    for tier in self.config.airdrop_tiers
                },
            }

        key = period_key(period, self.clock())
        with self.locks.hold(("window", period.value)):
            records = self.airdrop_repository.find(period=period.value, period_key=key)
            if records:
                self.logger.info("Window %s/%s already has %d payouts, settling those", period, key, len(records))
            else:
                records = self._snapshot(self.get_eligible(period), period, key)

        results: list[dict[str, Any]] = []
        for record in sorted(records, key=lambda r: r.rank):
            try:
                results.append(self._pay(record))
            except Exception as exc:
                self.logger.exception("Airdrop bookkeeping failed for user=%s period=%s", record.user_id, period)
                self.rollback_repositories()
                results.append({
                    "airdrop_id": record.id, "user_id": record.user_id, "amount": record.amount,
                    "success": False, "error": str(exc),
                })

        summary = {
            "executed": True,
            "period": period.value,
            "period_key": key,
            "total_users": len(records),
            "successful": sum(1 for r in results if r.get("success") and not r.get("skipped")),
            "failed": sum(1 for r in results if not r.get("success") and not r.get("skipped")),
            "skipped": sum(1 for r in results if r.get("skipped")),
            "results": results,
        }
        self.logger.info(
            "Airdrop %s/%s: %d users, %d paid, %d failed, %d skipped",
            period, key, summary["total_users"], summary["successful"], summary["failed"], summary["skipped"],
        )
        return summary

    def retry(self, airdrop_id: str) -> dict[str, Any]:
        record = self.airdrop_repository.get(airdrop_id)
        if record is None:
            raise NotFound("airdrop", airdrop_id)

        with self.locks.hold(("airdrop", record.period.value, record.user_id)):
            record = self.airdrop_repository.get(airdrop_id) or record
            if record.status == AirdropStatus.COMPLETED:
                return {**self._result(record), "retried": False}
            if record.status != AirdropStatus.FAILED:
                return {**self._result(record), "retried": False, "error": f"airdrop is {record.status}"}
            if record.retry_count > self.max_retries:
                self.logger.warning("Airdrop %s exhausted %d retries", airdrop_id, self.max_retries)
                return {**self._result(record), "retried": False, "error": "retry limit reached"}
            if not self._claim(record, expected=(AirdropStatus.FAILED,)):
                stored = self.airdrop_repository.get(airdrop_id) or record
                return {**self._result(stored), "retried": False}

            record = self._send(record)
        return {**self._result(record), "retried": True}

    def retry_failed(self, period: RankingPeriod | str | None = None) -> list[dict[str, Any]]:
        """Retry every FAILED payout of the current window that still has retries left."""
        period = RankingPeriod(period or self.config.airdrop_period)
        key = period_key(period, self.clock())
        results = []
        for record in self.airdrop_repository.find(
            period=period.value, period_key=key, status=AirdropStatus.FAILED.value,
        ):
            if record.retry_count > self.max_retries:
                continue
            results.append(self.retry(record.id))
        return results

    def release_stale_claims(self, max_age_seconds: int | None = None) -> list[dict[str, Any]]:
        """Park PROCESSING payouts claimed more than ``max_age_seconds`` ago as UNCONFIRMED.

        Such a claim belongs to a run that died between the payout call and the
        write of its outcome. The money may have gone out, so the payout is not
        retried automatically; ``confirm_payout`` settles it.
        """
        if max_age_seconds is None:
            max_age_seconds = self.config.airdrop_claim_timeout_seconds
        cutoff = self.clock() - timedelta(seconds=max_age_seconds)
        reason = "payout outcome unknown: claim expired"

        parked = []
        for record in self.airdrop_repository.find(status=AirdropStatus.PROCESSING.value):
            if record.claimed_at is not None and record.claimed_at > cutoff:
                continue
            with self.locks.hold(("airdrop", record.period.value, record.user_id)):
                if not self.airdrop_repository.transition(
                    record.id,
                    expected=(AirdropStatus.PROCESSING,),
                    status=AirdropStatus.UNCONFIRMED,
                    failure_reason=reason,
                ):
                    continue
                record.status = AirdropStatus.UNCONFIRMED
                record.failure_reason = reason
                self._mirror(record)
            self.logger.error(
                "Airdrop %s to %s stuck in PROCESSING since %s, needs reconciliation",
                record.id, record.user_id, record.claimed_at,
            )
            parked.append(self._result(record))
        return parked

    def confirm_payout(self, airdrop_id: str, transaction_hash: str | None = None) -> dict[str, Any]:
        """Settle an UNCONFIRMED payout once the gateway has been checked.

        With a transaction hash the payout is COMPLETED. Without one it is
        FAILED and goes back through ``retry``.
        """
        record = self.airdrop_repository.get(airdrop_id)
        if record is None:
            raise NotFound("airdrop", airdrop_id)

        with self.locks.hold(("airdrop", record.period.value, record.user_id)):
            record = self.airdrop_repository.get(airdrop_id) or record
            if record.status != AirdropStatus.UNCONFIRMED:
                return {**self._result(record), "error": f"airdrop is {record.status}"}

            if transaction_hash:
                record.status = AirdropStatus.COMPLETED
                record.transaction_hash = transaction_hash
                record.failure_reason = None
            else:
                record.status = AirdropStatus.FAILED
                record.failure_reason = "payout not found at gateway"
                record.retry_count += 1
            record.processed_at = self.clock()
            if not self.airdrop_repository.transition(
                airdrop_id,
                expected=(AirdropStatus.UNCONFIRMED,),
                status=record.status,
                transaction_hash=record.transaction_hash,
                failure_reason=record.failure_reason,
                retry_count=record.retry_count,
                processed_at=record.processed_at,
            ):
                return self._result(self.airdrop_repository.get(airdrop_id) or record)
            self._mirror(record)

        self.logger.info("Airdrop %s confirmed as %s", airdrop_id, record.status)
        return self._result(record)

    # ── queries ──

    def get_schedule(self) -> dict[str, Any]:
        period = RankingPeriod(self.config.airdrop_period)
        offset = 0
        tiers = []
        for tier in self.config.airdrop_tiers:
            tiers.append({
                "tier": tier.tier,
                "first_rank": offset + 1,
                "last_rank": offset + tier.size,
                "count": tier.size,
                "amount": tier.amount,
            })
            offset += tier.size
        return {
            "frequency": period.value,
            "next_airdrop": self._next_airdrop(period),
            "eligible_users": self.config.eligible_count,
            "tiers": tiers,
        }

    def get_user_history(self, user_id: str) -> list[dict[str, Any]]:
        return [asdict(record) for record in self.airdrop_repository.find(user_id=user_id)]

    def get_stats(self) -> dict[str, Any]:
        records = self.airdrop_repository.find()
        completed = [r for r in records if r.status == AirdropStatus.COMPLETED]
        processed = [r.processed_at for r in completed if r.processed_at]
        return {
            "total_airdrops": len(completed),
            "total_amount": sum(r.amount for r in completed),
            "total_users": len({r.user_id for r in completed}),
            "failed": sum(1 for r in records if r.status == AirdropStatus.FAILED),
            "pending": sum(1 for r in records if r.status in (AirdropStatus.PENDING, AirdropStatus.PROCESSING)),
            "unconfirmed": sum(1 for r in records if r.status == AirdropStatus.UNCONFIRMED),
            "last_airdrop": max(processed) if processed else None,
            "next_airdrop": self._next_airdrop(RankingPeriod(self.config.airdrop_period)),
        }

    # ── internals ──

    def _snapshot(self, eligible: list[EligibleUser], period: RankingPeriod, key: str) -> list[AirdropRecord]:
        now = self.clock()
        records = [
            AirdropRecord(
                id=AirdropRecord.make_id(period.value, key, user.user_id),
                user_id=user.user_id,
                period=period,
                period_key=key,
                rank=user.rank,
                tier=user.tier,
                amount=user.amount,
                created_at=now,
            )
            for user in eligible
        ]
        added = self.airdrop_repository.add_missing(records)
        self.logger.info("Stored %d payouts for window %s/%s", added, period, key)
        return records

    def _pay(self, record: AirdropRecord) -> dict[str, Any]:
        with self.locks.hold(("airdrop", record.period.value, record.user_id)):
            record = self.airdrop_repository.get(record.id) or record
            if record.status in (AirdropStatus.COMPLETED, AirdropStatus.PROCESSING, AirdropStatus.UNCONFIRMED):
                return {**self._result(record), "skipped": True}
            if record.status == AirdropStatus.FAILED and record.retry_count > self.max_retries:
                return {**self._result(record), "skipped": True, "error": "retry limit reached"}
            if not self._claim(record, expected=(AirdropStatus.PENDING, AirdropStatus.FAILED)):
                stored = self.airdrop_repository.get(record.id) or record
                return {**self._result(stored), "skipped": True}

            record = self._send(record)
        return self._result(record)

    def _claim(self, record: AirdropRecord, expected: tuple[AirdropStatus, ...]) -> bool:
        now = self.clock()
        if not self.airdrop_repository.claim(record.id, expected=expected, claimed_at=now):
            return False
        record.status = AirdropStatus.PROCESSING
        record.claimed_at = now
        return True

    def _send(self, record: AirdropRecord) -> AirdropRecord:
        """Pay a claimed record and store the outcome. The amount is never recomputed."""
        try:
            tx_hash = self.payout_client.send_airdrop(record.user_id, record.amount)
        except Exception as exc:
            record.status = AirdropStatus.FAILED
            record.failure_reason = str(exc)
            record.retry_count += 1
            self.logger.warning(
                "Airdrop %s to %s failed (attempt %d): %s", record.id, record.user_id, record.retry_count, exc,
            )
        else:
            record.status = AirdropStatus.COMPLETED
            record.transaction_hash = tx_hash
            record.failure_reason = None
        record.processed_at = self.clock()
        try:
            self.airdrop_repository.save(record)
        except Exception:
            # the record stays PROCESSING until release_stale_claims parks it
            self.logger.error(
                "Outcome of airdrop %s not stored: status=%s tx=%s",
                record.id, record.status, record.transaction_hash,
            )
            raise

        self._mirror(record)
        return record

    def _mirror(self, record: AirdropRecord) -> None:
        self.ranking_aggregator.record_airdrop(
            record.user_id,
            record.period,
            record.status,
            record.amount,
            transaction_hash=record.transaction_hash,
            failure_reason=record.failure_reason,
        )

    def _next_airdrop(self, period: RankingPeriod) -> datetime | None:
        now = self.clock()
        start = period_start(period, now)
        if start is None:
            return None
        if period == RankingPeriod.DAILY:
            return start + timedelta(days=1)
        if period == RankingPeriod.WEEKLY:
            return start + timedelta(days=7)
        if start.month == 12:
            return start.replace(year=start.year + 1, month=1)
        return start.replace(month=start.month + 1)

    @staticmethod
    def _result(record: AirdropRecord) -> dict[str, Any]:
        return {
            "airdrop_id": record.id,
            "user_id": record.user_id,
            "rank": record.rank,
            "tier": record.tier,
            "amount": record.amount,
            "status": record.status.value,
            "success": record.status == AirdropStatus.COMPLETED,
            "tx_hash": record.transaction_hash,
            "error": record.failure_reason,
            "retry_count": record.retry_count,
        }

    def rollback_repositories(self) -> None:
        for name, repo in [("ranking", self.ranking_repository),
                           ("airdrop", self.airdrop_repository)]:
            rollback = getattr(repo, "rollback", None)
            if callable(rollback):
                try:
                    rollback()
                except Exception as exc:
                    self.logger.warning("Rollback failed for %s: %s", name, exc)
