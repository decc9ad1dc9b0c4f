from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import func, update
from sqlmodel import Session, select

from updown_node.entities.game import (
    Game, GameStatus, Prediction, PredictionDirection, PredictionStatus,
)
from updown_node.entities.ranking import (
    AirdropRecord, AirdropStatus, RankingCursor, RankingPeriod, RankingRecord,
)
from updown_node.entities.score import ScoreEntry, ScoreStatus, ScoreType
from updown_node.db.tables import (
    AirdropRow, GameRow, PredictionRow, RankingCursorRow, RankingRow, ScoreEntryRow,
)
from updown_node.interfaces import (
    AirdropRepository, GameRepository, PredictionRepository,
    RankingRepository, ScoreRepository,
)


class DBGameRepository(GameRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def save(self, game: Game) -> None:
        row = self._domain_to_row(game)
        existing = self._session.get(GameRow, row.id)
        if existing is None:
            self._session.add(row)
        else:
            existing.symbol = row.symbol
            existing.start_time = row.start_time
            existing.end_time = row.end_time
            existing.duration = row.duration
            existing.start_price = row.start_price
            existing.end_price = row.end_price
            existing.status = row.status
            existing.created_by = row.created_by
            existing.created_at = row.created_at
        self._session.commit()

    def get(self, game_id: str) -> Game | None:
        row = self._session.get(GameRow, game_id)
        return self._row_to_domain(row) if row else None

    def find(
        self, *, status: str | None = None, symbol: str | None = None,
        ends_before: datetime | None = None, limit: int | None = None,
    ) -> list[Game]:
        stmt = select(GameRow).order_by(GameRow.start_time.asc(), GameRow.id.asc())
        if status is not None:
            stmt = stmt.where(GameRow.status == status)
        if symbol is not None:
            stmt = stmt.where(GameRow.symbol == symbol.upper())
        if ends_before is not None:
            stmt = stmt.where(GameRow.end_time <= ends_before)
        if limit is not None:
            stmt = stmt.limit(max(1, int(limit)))
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def count(self, *, status: str | None = None) -> int:
        stmt = select(func.count()).select_from(GameRow)
        if status is not None:
            stmt = stmt.where(GameRow.status == status)
        return int(self._session.exec(stmt).one())

    def transition(
        self, game_id: str, *, expected: GameStatus, new: GameStatus,
        end_price: float | None = None, end_time: datetime | None = None,
    ) -> bool:
        values: dict = {"status": new.value}
        if end_price is not None:
            values["end_price"] = end_price
        if end_time is not None:
            values["end_time"] = end_time
        stmt = (
            update(GameRow)
            .where(GameRow.id == game_id, GameRow.status == expected.value)
            .values(**values)
        )
        result = self._session.connection().execute(stmt)
        self._session.commit()
        return result.rowcount == 1

    @staticmethod
    def _row_to_domain(row: GameRow) -> Game:
        return Game(
            id=row.id,
            symbol=row.symbol,
            start_time=_ensure_utc(row.start_time),
            end_time=_ensure_utc(row.end_time),
            duration=row.duration,
            start_price=row.start_price,
            end_price=row.end_price,
            status=GameStatus(row.status),
            created_by=row.created_by,
            created_at=_ensure_utc(row.created_at),
        )

    @staticmethod
    def _domain_to_row(game: Game) -> GameRow:
        return GameRow(
            id=game.id,
            symbol=game.symbol,
            start_time=game.start_time,
            end_time=game.end_time,
            duration=game.duration,
            start_price=game.start_price,
            end_price=game.end_price,
            status=game.status.value,
            created_by=game.created_by,
            created_at=game.created_at,
        )


class DBPredictionRepository(PredictionRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def save(self, prediction: Prediction) -> None:
        row = self._domain_to_row(prediction)
        existing = self._session.get(PredictionRow, row.id)
        if existing is None:
            self._session.add(row)
        else:
            existing.game_id = row.game_id
            existing.user_id = row.user_id
            existing.direction = row.direction
            existing.confidence = row.confidence
            existing.accuracy = row.accuracy
            existing.prediction_price = row.prediction_price
            existing.status = row.status
            existing.is_correct = row.is_correct
            existing.score = row.score
            existing.end_price = row.end_price
            existing.submitted_at = row.submitted_at
            existing.resolved_at = row.resolved_at
        self._session.commit()

    def get(self, prediction_id: str) -> Prediction | None:
        row = self._session.get(PredictionRow, prediction_id)
        return self._row_to_domain(row) if row else None

    def find_one(self, game_id: str, user_id: str) -> Prediction | None:
        stmt = select(PredictionRow).where(
            PredictionRow.game_id == game_id, PredictionRow.user_id == user_id,
        )
        row = self._session.exec(stmt).first()
        return self._row_to_domain(row) if row else None

    def find(
        self, *, game_id: str | None = None, user_id: str | None = None,
        status: str | list[str] | None = None, newest_first: bool = False,
        limit: int | None = None, offset: int | None = None,
    ) -> list[Prediction]:
        if newest_first:
            stmt = select(PredictionRow).order_by(PredictionRow.submitted_at.desc(), PredictionRow.id.desc())
        else:
            stmt = select(PredictionRow).order_by(PredictionRow.submitted_at.asc(), PredictionRow.id.asc())
        stmt = self._filtered(stmt, game_id=game_id, user_id=user_id, status=status)
        if offset:
            stmt = stmt.offset(int(offset))
        if limit is not None:
            stmt = stmt.limit(max(1, int(limit)))
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def count(
        self, *, game_id: str | None = None, user_id: str | None = None, status: str | None = None,
    ) -> int:
        stmt = self._filtered(
            select(func.count()).select_from(PredictionRow),
            game_id=game_id, user_id=user_id, status=status,
        )
        return int(self._session.exec(stmt).one())

    def find_resolved(self, user_id: str, *, limit: int) -> list[Prediction]:
        stmt = (
            select(PredictionRow)
            .where(PredictionRow.user_id == user_id)
            .where(PredictionRow.status.in_([PredictionStatus.WIN.value, PredictionStatus.LOSE.value]))
            .order_by(PredictionRow.resolved_at.desc(), PredictionRow.id.desc())
            .limit(max(1, int(limit)))
        )
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def mark_resolved(self, prediction: Prediction) -> bool:
        stmt = (
            update(PredictionRow)
            .where(
                PredictionRow.id == prediction.id,
                PredictionRow.status == PredictionStatus.PENDING.value,
            )
            .values(
                status=prediction.status.value,
                is_correct=prediction.is_correct,
                score=prediction.score,
                end_price=prediction.end_price,
                resolved_at=prediction.resolved_at,
            )
        )
        result = self._session.connection().execute(stmt)
        self._session.commit()
        return result.rowcount == 1

    @staticmethod
    def _filtered(stmt, *, game_id=None, user_id=None, status=None):
        if game_id is not None:
            stmt = stmt.where(PredictionRow.game_id == game_id)
        if user_id is not None:
            stmt = stmt.where(PredictionRow.user_id == user_id)
        if status is not None:
            if isinstance(status, list):
                stmt = stmt.where(PredictionRow.status.in_([str(s) for s in status]))
            else:
                stmt = stmt.where(PredictionRow.status == str(status))
        return stmt

    @staticmethod
    def _row_to_domain(row: PredictionRow) -> Prediction:
        return Prediction(
            id=row.id,
            game_id=row.game_id,
            user_id=row.user_id,
            direction=PredictionDirection(row.direction),
            confidence=row.confidence,
            accuracy=row.accuracy,
            prediction_price=row.prediction_price,
            submitted_at=_ensure_utc(row.submitted_at),
            status=PredictionStatus(row.status),
            is_correct=row.is_correct,
            score=row.score,
            end_price=row.end_price,
            resolved_at=_ensure_utc(row.resolved_at) if row.resolved_at else None,
        )

    @staticmethod
    def _domain_to_row(prediction: Prediction) -> PredictionRow:
        return PredictionRow(
            id=prediction.id,
            game_id=prediction.game_id,
            user_id=prediction.user_id,
            direction=prediction.direction.value,
            confidence=prediction.confidence,
            accuracy=prediction.accuracy,
            prediction_price=prediction.prediction_price,
            status=prediction.status.value,
            is_correct=prediction.is_correct,
            score=prediction.score,
            end_price=prediction.end_price,
            submitted_at=prediction.submitted_at,
            resolved_at=prediction.resolved_at,
        )


class DBScoreRepository(ScoreRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def save(self, entry: ScoreEntry) -> None:
        row = self._domain_to_row(entry)
        existing = self._session.get(ScoreEntryRow, row.id)
        if existing is None:
            self._session.add(row)
        else:
            existing.user_id = row.user_id
            existing.game_id = row.game_id
            existing.prediction_id = row.prediction_id
            existing.score_type = row.score_type
            existing.points = row.points
            existing.total_points_after = row.total_points_after
            existing.multiplier = row.multiplier
            existing.status = row.status
            existing.is_correct = row.is_correct
            existing.description = row.description
            existing.created_at = row.created_at
            existing.confirmed_at = row.confirmed_at
        self._session.commit()

    def get(self, entry_id: str) -> ScoreEntry | None:
        row = self._session.get(ScoreEntryRow, entry_id)
        return self._row_to_domain(row) if row else None

    def latest_for_user(self, user_id: str) -> ScoreEntry | None:
        stmt = (
            select(ScoreEntryRow)
            .where(ScoreEntryRow.user_id == user_id)
            .order_by(ScoreEntryRow.created_at.desc(), ScoreEntryRow.total_points_after.desc())
            .limit(1)
        )
        row = self._session.exec(stmt).first()
        return self._row_to_domain(row) if row else None

    def find(
        self, *, user_id: str | None = None, status: str | None = None,
        confirmed_after: datetime | None = None, confirmed_until: datetime | None = None,
        limit: int | None = None,
    ) -> list[ScoreEntry]:
        stmt = select(ScoreEntryRow).order_by(ScoreEntryRow.confirmed_at.asc(), ScoreEntryRow.created_at.asc())
        if user_id is not None:
            stmt = stmt.where(ScoreEntryRow.user_id == user_id)
        if status is not None:
            stmt = stmt.where(ScoreEntryRow.status == status)
        if confirmed_after is not None:
            stmt = stmt.where(ScoreEntryRow.confirmed_at > confirmed_after)
        if confirmed_until is not None:
            stmt = stmt.where(ScoreEntryRow.confirmed_at <= confirmed_until)
        if limit is not None:
            stmt = stmt.limit(max(1, int(limit)))
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def count(self, *, user_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(ScoreEntryRow)
        if user_id is not None:
            stmt = stmt.where(ScoreEntryRow.user_id == user_id)
        return int(self._session.exec(stmt).one())

    def sum_points_by_user(
        self, *, confirmed_after: datetime | None = None, confirmed_until: datetime | None = None,
    ) -> dict[str, int]:
        stmt = (
            select(ScoreEntryRow.user_id, func.sum(ScoreEntryRow.points))
            .where(ScoreEntryRow.status == ScoreStatus.CONFIRMED.value)
            .group_by(ScoreEntryRow.user_id)
        )
        if confirmed_after is not None:
            stmt = stmt.where(ScoreEntryRow.confirmed_at > confirmed_after)
        if confirmed_until is not None:
            stmt = stmt.where(ScoreEntryRow.confirmed_at <= confirmed_until)
        return {user_id: int(total or 0) for user_id, total in self._session.exec(stmt).all()}

    @staticmethod
    def _row_to_domain(row: ScoreEntryRow) -> ScoreEntry:
        return ScoreEntry(
            id=row.id,
            user_id=row.user_id,
            game_id=row.game_id,
            prediction_id=row.prediction_id,
            score_type=ScoreType(row.score_type),
            points=row.points,
            total_points_after=row.total_points_after,
            multiplier=row.multiplier,
            status=ScoreStatus(row.status),
            is_correct=row.is_correct,
            description=row.description,
            created_at=_ensure_utc(row.created_at),
            confirmed_at=_ensure_utc(row.confirmed_at) if row.confirmed_at else None,
        )

    @staticmethod
    def _domain_to_row(entry: ScoreEntry) -> ScoreEntryRow:
        return ScoreEntryRow(
            id=entry.id,
            user_id=entry.user_id,
            game_id=entry.game_id,
            prediction_id=entry.prediction_id,
            score_type=entry.score_type.value,
            points=entry.points,
            total_points_after=entry.total_points_after,
            multiplier=entry.multiplier,
            status=entry.status.value,
            is_correct=entry.is_correct,
            description=entry.description,
            created_at=entry.created_at,
            confirmed_at=entry.confirmed_at,
        )


class DBRankingRepository(RankingRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def get(self, user_id: str, period: str) -> RankingRecord | None:
        row = self._session.get(RankingRow, _ranking_id(user_id, period))
        return self._row_to_domain(row) if row else None

    def find(self, period: str) -> list[RankingRecord]:
        stmt = (
            select(RankingRow)
            .where(RankingRow.period == str(period))
            .order_by(RankingRow.created_at.asc(), RankingRow.user_id.asc())
        )
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def count(self, period: str) -> int:
        stmt = select(func.count()).select_from(RankingRow).where(RankingRow.period == str(period))
        return int(self._session.exec(stmt).one())

    def save(self, record: RankingRecord) -> None:
        self._stage(record)
        self._session.commit()

    def save_all(self, records: Iterable[RankingRecord]) -> None:
        for record in records:
            self._stage(record)
        self._session.commit()

    def _stage(self, record: RankingRecord) -> None:
        row = self._domain_to_row(record)
        existing = self._session.get(RankingRow, row.id)
        if existing is None:
            self._session.add(row)
            return
        existing.user_id = row.user_id
        existing.period = row.period
        existing.period_key = row.period_key
        existing.total_score = row.total_score
        existing.rank = row.rank
        existing.previous_rank = row.previous_rank
        existing.win_count = row.win_count
        existing.lose_count = row.lose_count
        existing.current_streak = row.current_streak
        existing.best_streak = row.best_streak
        existing.airdrop_status = row.airdrop_status
        existing.airdrop_amount = row.airdrop_amount
        existing.airdrop_retry_count = row.airdrop_retry_count
        existing.transaction_hash = row.transaction_hash
        existing.airdrop_failure_reason = row.airdrop_failure_reason
        existing.aggregated_until = row.aggregated_until
        existing.created_at = row.created_at
        existing.updated_at = row.updated_at

    def get_cursor(self, period: str) -> RankingCursor | None:
        row = self._session.get(RankingCursorRow, str(period))
        if row is None:
            return None
        return RankingCursor(
            period=RankingPeriod(row.period),
            period_key=row.period_key,
            aggregated_until=_ensure_utc(row.aggregated_until) if row.aggregated_until else None,
        )

    def save_cursor(self, cursor: RankingCursor) -> None:
        existing = self._session.get(RankingCursorRow, cursor.period.value)
        if existing is None:
            self._session.add(RankingCursorRow(
                period=cursor.period.value,
                period_key=cursor.period_key,
                aggregated_until=cursor.aggregated_until,
            ))
        else:
            existing.period_key = cursor.period_key
            existing.aggregated_until = cursor.aggregated_until
        self._session.commit()

    @staticmethod
    def _row_to_domain(row: RankingRow) -> RankingRecord:
        return RankingRecord(
            user_id=row.user_id,
            period=RankingPeriod(row.period),
            period_key=row.period_key,
            total_score=row.total_score,
            rank=row.rank,
            previous_rank=row.previous_rank,
            win_count=row.win_count,
            lose_count=row.lose_count,
            current_streak=row.current_streak,
            best_streak=row.best_streak,
            airdrop_status=AirdropStatus(row.airdrop_status),
            airdrop_amount=row.airdrop_amount,
            airdrop_retry_count=row.airdrop_retry_count,
            transaction_hash=row.transaction_hash,
            airdrop_failure_reason=row.airdrop_failure_reason,
            aggregated_until=_ensure_utc(row.aggregated_until) if row.aggregated_until else None,
            created_at=_ensure_utc(row.created_at),
            updated_at=_ensure_utc(row.updated_at),
        )

    @staticmethod
    def _domain_to_row(record: RankingRecord) -> RankingRow:
        return RankingRow(
            id=_ranking_id(record.user_id, record.period),
            user_id=record.user_id,
            period=record.period.value,
            period_key=record.period_key,
            total_score=record.total_score,
            rank=record.rank,
            previous_rank=record.previous_rank,
            win_count=record.win_count,
            lose_count=record.lose_count,
            current_streak=record.current_streak,
            best_streak=record.best_streak,
            airdrop_status=record.airdrop_status.value,
            airdrop_amount=record.airdrop_amount,
            airdrop_retry_count=record.airdrop_retry_count,
            transaction_hash=record.transaction_hash,
            airdrop_failure_reason=record.airdrop_failure_reason,
            aggregated_until=record.aggregated_until,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class DBAirdropRepository(AirdropRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def get(self, airdrop_id: str) -> AirdropRecord | None:
        row = self._session.get(AirdropRow, airdrop_id)
        return self._row_to_domain(row) if row else None

    def save(self, record: AirdropRecord) -> None:
        row = self._domain_to_row(record)
        existing = self._session.get(AirdropRow, row.id)
        if existing is None:
            self._session.add(row)
        else:
            existing.user_id = row.user_id
            existing.period = row.period
            existing.period_key = row.period_key
            existing.rank = row.rank
            existing.tier = row.tier
            existing.amount = row.amount
            existing.status = row.status
            existing.transaction_hash = row.transaction_hash
            existing.failure_reason = row.failure_reason
            existing.retry_count = row.retry_count
            existing.created_at = row.created_at
            existing.processed_at = row.processed_at
            existing.claimed_at = row.claimed_at
        self._session.commit()

    def find(
        self, *, period: str | None = None, period_key: str | None = None,
        user_id: str | None = None, status: str | None = None,
    ) -> list[AirdropRecord]:
        stmt = select(AirdropRow).order_by(AirdropRow.created_at.desc(), AirdropRow.rank.asc())
        if period is not None:
            stmt = stmt.where(AirdropRow.period == str(period))
        if period_key is not None:
            stmt = stmt.where(AirdropRow.period_key == period_key)
        if user_id is not None:
            stmt = stmt.where(AirdropRow.user_id == user_id)
        if status is not None:
            stmt = stmt.where(AirdropRow.status == str(status))
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def add_missing(self, records: Iterable[AirdropRecord]) -> int:
        """Insert the records whose id is not stored yet; stored ones are left untouched."""
        added = 0
        for record in records:
            if self._session.get(AirdropRow, record.id) is None:
                self._session.add(self._domain_to_row(record))
                added += 1
        self._session.commit()
        return added

    def transition(self, airdrop_id: str, *, expected: tuple[AirdropStatus, ...], **values) -> bool:
        values = {k: v.value if isinstance(v, AirdropStatus) else v for k, v in values.items()}
        stmt = (
            update(AirdropRow)
            .where(AirdropRow.id == airdrop_id, AirdropRow.status.in_([s.value for s in expected]))
            .values(**values)
        )
        result = self._session.connection().execute(stmt)
        self._session.commit()
        return result.rowcount == 1

    @staticmethod
    def _row_to_domain(row: AirdropRow) -> AirdropRecord:
        return AirdropRecord(
            id=row.id,
            user_id=row.user_id,
            period=RankingPeriod(row.period),
            period_key=row.period_key,
            rank=row.rank,
            tier=row.tier,
            amount=row.amount,
            status=AirdropStatus(row.status),
            transaction_hash=row.transaction_hash,
            failure_reason=row.failure_reason,
            retry_count=row.retry_count,
            created_at=_ensure_utc(row.created_at),
            processed_at=_ensure_utc(row.processed_at) if row.processed_at else None,
            claimed_at=_ensure_utc(row.claimed_at) if row.claimed_at else None,
        )

    @staticmethod
    def _domain_to_row(record: AirdropRecord) -> AirdropRow:
        return AirdropRow(
            id=record.id,
            user_id=record.user_id,
            period=record.period.value,
            period_key=record.period_key,
            rank=record.rank,
            tier=record.tier,
            amount=record.amount,
            status=record.status.value,
            transaction_hash=record.transaction_hash,
            failure_reason=record.failure_reason,
            retry_count=record.retry_count,
            created_at=record.created_at,
            processed_at=record.processed_at,
            claimed_at=record.claimed_at,
        )


def _ranking_id(user_id: str, period: str) -> str:
    return f"RNK_{RankingPeriod(period).value}_{user_id}"


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
