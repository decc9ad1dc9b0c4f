from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from updown_node.entities.score import ScoreEntry


class ScoreRepository(ABC):

    @abstractmethod
    def save(self, entry: ScoreEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, entry_id: str) -> ScoreEntry | None:
        raise NotImplementedError

    @abstractmethod
    def latest_for_user(self, user_id: str) -> ScoreEntry | None:
        raise NotImplementedError

    @abstractmethod
    def find(
        self,
        *,
        user_id: str | None = None,
        status: str | None = None,
        confirmed_after: datetime | None = None,
        confirmed_until: datetime | None = None,
        limit: int | None = None,
    ) -> list[ScoreEntry]:
        """Entries ordered by confirmation time, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def count(self, *, user_id: str | None = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def sum_points_by_user(
        self,
        *,
        confirmed_after: datetime | None = None,
        confirmed_until: datetime | None = None,
    ) -> dict[str, int]:
        """``sum(points) group by user_id`` over CONFIRMED entries."""
        raise NotImplementedError
