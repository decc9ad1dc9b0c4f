"""Game lifecycle: open, close, cancel, predictions and per-game queries."""
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from updown_node.entities.game import (
    Game, GameStatus, Prediction, PredictionDirection, PredictionStatus,
)
from updown_node.errors import (
    DuplicatePrediction, InvalidGameState, NotFound, PermissionDenied, PriceUnavailable,
)
from updown_node.feeds.contracts import PriceFeed
from updown_node.game_config import GameConfig
from updown_node.interfaces.game_repository import GameRepository
from updown_node.interfaces.prediction_repository import PredictionRepository
from updown_node.services.batch import BatchResult
from updown_node.services.locks import KeyedLocks
from updown_node.services.resolver import PredictionResolver


# ── active-game policies ──
# A policy runs before a new game opens and decides which active games are closed.

def close_all_active_games(manager: "GameLifecycleManager", symbol: str) -> BatchResult:
    """Only one game is live system-wide: close every active game, whatever its symbol."""
    return manager.end_active_games()


def close_same_symbol_games(manager: "GameLifecycleManager", symbol: str) -> BatchResult:
    return manager.end_active_games(symbol=symbol)


ACTIVE_GAME_POLICIES: dict[str, Callable[["GameLifecycleManager", str], BatchResult]] = {
    "global": close_all_active_games,
    "per_symbol": close_same_symbol_games,
}


class GameLifecycleManager:
    def __init__(
        self,
        game_repository: GameRepository,
        prediction_repository: PredictionRepository,
        price_feed: PriceFeed,
        resolver: PredictionResolver,
        config: GameConfig | None = None,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.game_repository = game_repository
        self.prediction_repository = prediction_repository
        self.price_feed = price_feed
        self.resolver = resolver
        self.config = config or GameConfig()
        self.active_game_policy = ACTIVE_GAME_POLICIES[self.config.active_game_policy]
        self.locks = locks if locks is not None else KeyedLocks()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    # ── lifecycle ──

    def create_game(self, symbol: str, duration: int | None = None, user_id: str = "system") -> Game:
        symbol = symbol.strip().upper()
        if not symbol:
            raise ValueError("symbol cannot be empty")
        duration = int(duration or self.config.default_game_duration_seconds)
        if duration <= 0:
            raise ValueError(f"duration must be positive, got {duration}")

        with self.locks.hold(("create",)):
            closed = self.active_game_policy(self, symbol)
            if closed.processed:
                self.logger.info(
                    "Closed %d/%d active games before opening %s (deferred=%d, failed=%d)",
                    closed.succeeded, closed.processed, symbol, closed.deferred, closed.failed,
                )

            sample = self.price_feed.current_price(symbol)
            if sample is None:
                raise PriceUnavailable(symbol)

            now = self.clock()
            game = Game(
                id=f"GAM_{uuid.uuid4().hex[:16]}",
                symbol=symbol,
                start_time=now,
                end_time=now + timedelta(seconds=duration),
                duration=duration,
                start_price=sample.price,
                created_by=user_id,
                created_at=now,
            )
            self.game_repository.save(game)

        self.logger.info(
            "Opened game %s symbol=%s start_price=%s duration=%ds by=%s",
            game.id, symbol, sample.price, duration, user_id,
        )
        return game

    def close_game(self, game: Game | str) -> Game:
        """Close an active game against the current price and resolve its predictions.

        Raises ``PriceUnavailable`` and leaves the game ACTIVE when the feed has
        no price. Closing a game that is already COMPLETED returns the stored game.
        """
        game_id = game.id if isinstance(game, Game) else game
        with self.locks.hold(("game", game_id)):
            stored = self.game_repository.get(game_id)
            if stored is None:
                raise NotFound("game", game_id)
            if stored.status == GameStatus.COMPLETED:
                self._resolve_pending(stored)
                return stored
            if stored.status == GameStatus.CANCELLED:
                raise InvalidGameState(f"game {game_id} was cancelled")

            sample = self.price_feed.current_price(stored.symbol)
            if sample is None:
                raise PriceUnavailable(stored.symbol)

            now = self.clock()
            won = self.game_repository.transition(
                game_id,
                expected=GameStatus.ACTIVE,
                new=GameStatus.COMPLETED,
                end_price=sample.price,
                end_time=now,
            )
            if not won:
                self.logger.debug("Game %s closed concurrently", game_id)
                return self.game_repository.get(game_id) or stored

            stored.status = GameStatus.COMPLETED
            stored.end_price = sample.price
            stored.end_time = now
            self._resolve_pending(stored)

        self.logger.info(
            "Closed game %s symbol=%s start=%s end=%s",
            stored.id, stored.symbol, stored.start_price, stored.end_price,
        )
        return stored

    def end_active_games(self, *, due_only: bool = False, symbol: str | None = None) -> BatchResult:
        """Close every active game; one failure never stops the others."""
        now = self.clock()
        games = self.game_repository.find(
            status=GameStatus.ACTIVE.value,
            symbol=symbol,
            ends_before=now if due_only else None,
        )

        result = BatchResult()
        for game in games:
            result.processed += 1
            try:
                self.close_game(game)
                result.succeeded += 1
            except PriceUnavailable as exc:
                self.logger.warning("Deferring close of game %s: %s", game.id, exc)
                result.record_deferred(game.id, exc)
            except Exception as exc:
                self.logger.exception("Failed to close game %s", game.id)
                self.rollback_repositories()
                result.record_failure(game.id, exc)
        return result

    def cancel_game(self, game_id: str, user_id: str, is_admin: bool = False) -> Game:
        with self.locks.hold(("game", game_id)):
            game = self.get_game(game_id)
            if game.created_by != user_id and not is_admin:
                raise PermissionDenied(f"user {user_id} cannot cancel game {game_id}")
            if game.status != GameStatus.ACTIVE:
                raise InvalidGameState(f"game {game_id} is {game.status} and cannot be cancelled")
            if not self.game_repository.transition(
                game_id, expected=GameStatus.ACTIVE, new=GameStatus.CANCELLED,
            ):
                raise InvalidGameState(f"game {game_id} changed state while cancelling")
            game.status = GameStatus.CANCELLED

        self.logger.info("Cancelled game %s by=%s admin=%s", game_id, user_id, is_admin)
        return game

    # ── predictions ──

    def submit_prediction(
        self,
        game_id: str,
        user_id: str,
        direction: PredictionDirection | str,
        confidence: int = 5,
        accuracy: float = 0,
    ) -> Prediction:
        direction = PredictionDirection(str(direction).upper())
        if not 1 <= int(confidence) <= 10:
            raise ValueError(f"confidence must be between 1 and 10, got {confidence}")
        if not 0 <= float(accuracy) <= 100:
            raise ValueError(f"accuracy must be between 0 and 100, got {accuracy}")

        with self.locks.hold(("game", game_id)):
            game = self.get_game(game_id)
            now = self.clock()
            if game.status != GameStatus.ACTIVE:
                raise InvalidGameState(f"game {game_id} is {game.status}")
            if now >= game.end_time:
                raise InvalidGameState(f"game {game_id} has ended")
            if self.prediction_repository.find_one(game_id, user_id) is not None:
                raise DuplicatePrediction(f"user {user_id} already predicted on game {game_id}")

            sample = self.price_feed.current_price(game.symbol)
            prediction = Prediction(
                id=f"PRD_{uuid.uuid4().hex[:16]}",
                game_id=game_id,
                user_id=user_id,
                direction=direction,
                confidence=int(confidence),
                accuracy=float(accuracy),
                prediction_price=sample.price if sample is not None else game.start_price,
                submitted_at=now,
            )
            self.prediction_repository.save(prediction)

        self.logger.info("Prediction %s game=%s user=%s direction=%s", prediction.id, game_id, user_id, direction)
        return prediction

    # ── queries ──

    def get_game(self, game_id: str) -> Game:
        game = self.game_repository.get(game_id)
        if game is None:
            raise NotFound("game", game_id)
        return game

    def get_game_result(self, game_id: str, user_id: str) -> dict[str, Any]:
        """The user's outcome on a game, closing the game first if it is still active."""
        game = self.get_game(game_id)
        prediction = self.prediction_repository.find_one(game_id, user_id)
        if prediction is None:
            raise NotFound("prediction", f"{game_id}/{user_id}")

        if game.status == GameStatus.ACTIVE:
            game = self.close_game(game)
            prediction = self.prediction_repository.get(prediction.id) or prediction

        return {
            "game": game,
            "prediction": prediction,
            "score": prediction.score,
            "is_correct": prediction.is_correct,
            "end_price": prediction.end_price if prediction.end_price is not None else game.end_price,
        }

    def get_game_stats(self, game_id: str) -> dict[str, Any]:
        predictions = self.prediction_repository.find(game_id=game_id)
        total = len(predictions)
        return {
            "total_predictions": total,
            "up_predictions": sum(1 for p in predictions if p.direction == PredictionDirection.UP),
            "down_predictions": sum(1 for p in predictions if p.direction == PredictionDirection.DOWN),
            "correct_predictions": sum(1 for p in predictions if p.is_correct),
            "average_score": sum(p.score for p in predictions) / total if total else 0.0,
        }

    def get_user_game_history(self, user_id: str, page: int = 1, limit: int = 20) -> dict[str, Any]:
        page = max(1, int(page))
        limit = max(1, int(limit))
        predictions = self.prediction_repository.find(
            user_id=user_id, newest_first=True, limit=limit, offset=(page - 1) * limit,
        )
        total = self.prediction_repository.count(user_id=user_id)
        return {
            "predictions": predictions,
            "total": total,
            "pages": math.ceil(total / limit),
        }

    # ── internals ──

    def _resolve_pending(self, game: Game) -> int:
        pending = self.prediction_repository.find(game_id=game.id, status=PredictionStatus.PENDING.value)
        resolved = 0
        for prediction in pending:
            try:
                self.resolver.resolve(prediction, game)
                resolved += 1
            except Exception:
                self.logger.exception("Failed to resolve prediction %s of game %s", prediction.id, game.id)
                self.rollback_repositories()
        if pending:
            self.logger.info("Resolved %d/%d predictions of game %s", resolved, len(pending), game.id)
        return resolved

    def rollback_repositories(self) -> None:
        for name, repo in [("game", self.game_repository),
                           ("prediction", self.prediction_repository)]:
            rollback = getattr(repo, "rollback", None)
            if callable(rollback):
                try:
                    rollback()
                except Exception as exc:
                    self.logger.warning("Rollback failed for %s: %s", name, exc)
