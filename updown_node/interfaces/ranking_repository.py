from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from updown_node.entities.ranking import RankingCursor, RankingRecord


class RankingRepository(ABC):

    @abstractmethod
    def get(self, user_id: str, period: str) -> RankingRecord | None:
        raise NotImplementedError

    @abstractmethod
    def find(self, period: str) -> list[RankingRecord]:
        raise NotImplementedError

    @abstractmethod
    def count(self, period: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def save(self, record: RankingRecord) -> None:
        raise NotImplementedError

    def save_all(self, records: Iterable[RankingRecord]) -> None:
        for record in records:
            self.save(record)

    @abstractmethod
    def get_cursor(self, period: str) -> RankingCursor | None:
        raise NotImplementedError

    @abstractmethod
    def save_cursor(self, cursor: RankingCursor) -> None:
        raise NotImplementedError
