from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable

from updown_node.entities.ranking import AirdropRecord, AirdropStatus


class AirdropRepository(ABC):

    @abstractmethod
    def get(self, airdrop_id: str) -> AirdropRecord | None:
        raise NotImplementedError

    @abstractmethod
    def save(self, record: AirdropRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_missing(self, records: Iterable[AirdropRecord]) -> int:
        """Insert records not stored yet and return how many were added."""
        raise NotImplementedError

    @abstractmethod
    def find(
        self,
        *,
        period: str | None = None,
        period_key: str | None = None,
        user_id: str | None = None,
        status: str | None = None,
    ) -> list[AirdropRecord]:
        raise NotImplementedError

    @abstractmethod
    def transition(self, airdrop_id: str, *, expected: tuple[AirdropStatus, ...], **values) -> bool:
        """Atomically update a payout whose status is one of ``expected``."""
        raise NotImplementedError

    def claim(
        self, airdrop_id: str, *, expected: tuple[AirdropStatus, ...], claimed_at: datetime | None = None,
    ) -> bool:
        """Atomically move a payout from one of ``expected`` to PROCESSING."""
        return self.transition(
            airdrop_id, expected=expected, status=AirdropStatus.PROCESSING, claimed_at=claimed_at,
        )
