from updown_node.feeds.caching import CachingPriceFeed
from updown_node.feeds.contracts import PriceFeed, PriceSample
from updown_node.feeds.expiring_store import ExpiringStore
from updown_node.feeds.registry import (
    FeedFactory,
    FeedSettings,
    PriceFeedRegistry,
    create_default_registry,
)

__all__ = [
    "PriceFeed",
    "PriceSample",
    "ExpiringStore",
    "CachingPriceFeed",
    "FeedSettings",
    "FeedFactory",
    "PriceFeedRegistry",
    "create_default_registry",
]
