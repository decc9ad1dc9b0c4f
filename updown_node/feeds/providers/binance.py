from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import requests

from updown_node.feeds.contracts import PriceFeed, PriceSample
from updown_node.feeds.registry import FeedSettings

logger = logging.getLogger(__name__)

_BINANCE_API = "https://api.binance.com"


@dataclass
class BinanceRestClient:
    base_url: str = _BINANCE_API
    timeout_seconds: float = 8.0
    session: requests.Session = field(default_factory=requests.Session)

    def ticker_price(self, symbol: str) -> float:
        response = self.session.get(
            f"{self.base_url}/api/v3/ticker/price",
            params={"symbol": symbol},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        return float(payload["price"])


class BinancePriceFeed(PriceFeed):
    """Spot ticker price. Game symbols such as ``BTC`` are quoted against ``quote_asset``."""

    def __init__(self, client: BinanceRestClient | None = None, quote_asset: str = "USDT"):
        self.client = client or BinanceRestClient()
        self.quote_asset = quote_asset.upper()

    def market_symbol(self, symbol: str) -> str:
        symbol = symbol.upper()
        if symbol.endswith(self.quote_asset) and symbol != self.quote_asset:
            return symbol
        return f"{symbol}{self.quote_asset}"

    def current_price(self, symbol: str) -> PriceSample | None:
        market = self.market_symbol(symbol)
        try:
            price = self.client.ticker_price(market)
        except Exception as exc:
            logger.warning("Binance price unavailable for %s: %s", market, exc)
            return None
        return PriceSample(
            symbol=symbol.upper(),
            price=price,
            timestamp=datetime.now(timezone.utc),
            source="binance",
        )


def build_binance_feed(settings: FeedSettings) -> PriceFeed:
    client = BinanceRestClient(
        base_url=settings.options.get("base_url", _BINANCE_API),
        timeout_seconds=settings.timeout_seconds,
    )
    return BinancePriceFeed(client, quote_asset=settings.options.get("quote_asset", "USDT"))
