from __future__ import annotations

import logging

from updown_node.feeds.contracts import PriceFeed, PriceSample
from updown_node.feeds.expiring_store import ExpiringStore

logger = logging.getLogger(__name__)


class CachingPriceFeed(PriceFeed):
    """Serve repeated lookups of the same symbol from a short-lived cache.

    Misses are not cached, so an unavailable price is retried on the next call.
    """

    def __init__(self, inner: PriceFeed, ttl_seconds: float = 2.0, store: ExpiringStore[PriceSample] | None = None):
        self.inner = inner
        self.store: ExpiringStore[PriceSample] = store or ExpiringStore(ttl_seconds)

    def current_price(self, symbol: str) -> PriceSample | None:
        key = symbol.upper()
        cached = self.store.get(key)
        if cached is not None:
            return cached
        sample = self.inner.current_price(key)
        if sample is not None:
            self.store.set(key, sample)
        return sample

    def sweep(self) -> int:
        removed = self.store.sweep()
        if removed:
            logger.debug("Swept %d expired price samples", removed)
        return removed
