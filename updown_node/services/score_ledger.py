"""Score ledger: turns resolved predictions into ledger entries."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Literal

from updown_node.entities.score import ScoreEntry, ScoreStatus, ScoreType
from updown_node.interfaces.score_repository import ScoreRepository
from updown_node.services.locks import KeyedLocks


class ScoreAccumulator:
    """Append scores to a user's ledger.

    ``event`` mode writes one immutable entry per scoring event whose id is
    derived from the prediction, so applying the same prediction twice is a
    no-op. ``legacy`` mode keeps a single row per user: ``points`` holds the
    latest delta and ``total_points_after`` the running total.
    """

    def __init__(
        self,
        score_repository: ScoreRepository,
        ledger_mode: Literal["event", "legacy"] = "event",
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        if ledger_mode not in ("event", "legacy"):
            raise ValueError(f"unknown ledger mode: {ledger_mode}")
        self.score_repository = score_repository
        self.ledger_mode = ledger_mode
        self.locks = locks if locks is not None else KeyedLocks()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    def apply(
        self,
        user_id: str,
        is_correct: bool,
        score: int,
        *,
        game_id: str | None = None,
        prediction_id: str | None = None,
        score_type: ScoreType = ScoreType.PREDICTION_WIN,
        description: str | None = None,
    ) -> ScoreEntry:
        with self.locks.hold(("ledger", user_id)):
            if self.ledger_mode == "legacy":
                entry = self._apply_legacy(user_id, is_correct, score, game_id, prediction_id, score_type)
            else:
                entry = self._apply_event(
                    user_id, is_correct, score, game_id, prediction_id, score_type, description,
                )
        self.logger.debug(
            "Ledger %s user=%s points=%d total=%d", entry.id, user_id, entry.points, entry.total_points_after,
        )
        return entry

    def total_for(self, user_id: str) -> int:
        latest = self.score_repository.latest_for_user(user_id)
        return latest.total_points_after if latest else 0

    def _apply_event(
        self, user_id, is_correct, score, game_id, prediction_id, score_type, description,
    ) -> ScoreEntry:
        entry_id = f"SCR_{prediction_id}" if prediction_id else f"SCR_{user_id}_{uuid.uuid4().hex[:12]}"
        existing = self.score_repository.get(entry_id)
        if existing is not None:
            return existing

        now = self.clock()
        entry = ScoreEntry(
            id=entry_id,
            user_id=user_id,
            points=score,
            total_points_after=self.total_for(user_id) + score,
            score_type=score_type,
            game_id=game_id,
            prediction_id=prediction_id,
            is_correct=is_correct,
            description=description or _describe(is_correct, score),
            created_at=now,
        )
        entry.confirm(now)
        self.score_repository.save(entry)
        return entry

    def _apply_legacy(self, user_id, is_correct, score, game_id, prediction_id, score_type) -> ScoreEntry:
        entry = self.score_repository.get(f"SCR_{user_id}")
        if entry is not None and prediction_id and entry.prediction_id == prediction_id:
            return entry

        now = self.clock()
        if entry is None:
            entry = ScoreEntry(
                id=f"SCR_{user_id}",
                user_id=user_id,
                points=score,
                total_points_after=score,
                score_type=score_type,
                created_at=now,
            )
        else:
            entry.points = score
            entry.total_points_after += score
            entry.score_type = score_type
        entry.game_id = game_id
        entry.prediction_id = prediction_id
        entry.is_correct = is_correct
        entry.description = _describe(is_correct, score)
        entry.confirm(now)
        self.score_repository.save(entry)
        return entry


def _describe(is_correct: bool, score: int) -> str:
    return f"prediction {'won' if is_correct else 'lost'} ({score} points)"
