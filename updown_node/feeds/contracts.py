from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class PriceSample:
    """A single price observation returned by a feed."""

    symbol: str
    price: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "unknown"


class PriceFeed(ABC):
    """Current-price lookup. Absence or timeout is reported as ``None``, never raised."""

    @abstractmethod
    def current_price(self, symbol: str) -> PriceSample | None:
        raise NotImplementedError
