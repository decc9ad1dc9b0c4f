from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from updown_node.entities.game import Game, GameStatus


class GameRepository(ABC):

    @abstractmethod
    def save(self, game: Game) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, game_id: str) -> Game | None:
        raise NotImplementedError

    @abstractmethod
    def find(
        self,
        *,
        status: str | None = None,
        symbol: str | None = None,
        ends_before: datetime | None = None,
        limit: int | None = None,
    ) -> list[Game]:
        raise NotImplementedError

    @abstractmethod
    def count(self, *, status: str | None = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def transition(
        self,
        game_id: str,
        *,
        expected: GameStatus,
        new: GameStatus,
        end_price: float | None = None,
        end_time: datetime | None = None,
    ) -> bool:
        """Atomically move a game from ``expected`` to ``new``.

        Returns False when the stored status no longer matches ``expected``;
        exactly one concurrent caller can win.
        """
        raise NotImplementedError
