from __future__ import annotations

from abc import ABC, abstractmethod

from updown_node.entities.game import Prediction


class PredictionRepository(ABC):

    @abstractmethod
    def save(self, prediction: Prediction) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, prediction_id: str) -> Prediction | None:
        raise NotImplementedError

    @abstractmethod
    def find_one(self, game_id: str, user_id: str) -> Prediction | None:
        raise NotImplementedError

    @abstractmethod
    def find(
        self,
        *,
        game_id: str | None = None,
        user_id: str | None = None,
        status: str | list[str] | None = None,
        newest_first: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Prediction]:
        raise NotImplementedError

    @abstractmethod
    def count(
        self, *, game_id: str | None = None, user_id: str | None = None, status: str | None = None,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    def find_resolved(self, user_id: str, *, limit: int) -> list[Prediction]:
        """Resolved predictions of a user, most recently resolved first."""
        raise NotImplementedError

    @abstractmethod
    def mark_resolved(self, prediction: Prediction) -> bool:
        """Persist the outcome fields only if the stored row is still PENDING."""
        raise NotImplementedError
