from updown_node.feeds.providers.binance import BinancePriceFeed, build_binance_feed
from updown_node.feeds.providers.pyth import PythPriceFeed, build_pyth_feed

__all__ = [
    "BinancePriceFeed",
    "PythPriceFeed",
    "build_binance_feed",
    "build_pyth_feed",
]
