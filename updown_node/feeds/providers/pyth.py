from __future__ import annotations

import logging
from datetime import datetime, timezone

import requests

from updown_node.errors import PriceUnavailable
from updown_node.feeds.contracts import PriceFeed, PriceSample
from updown_node.feeds.registry import FeedSettings

logger = logging.getLogger(__name__)


class PythClient:
    # from https://docs.pyth.network/price-feeds/price-feeds
    _LATEST_PRICE_URL = "https://hermes.pyth.network/api/latest_price_feeds"
    _ASSET_TO_TOKEN_ID_MAP: dict[str, str] = {
        "BTC": "e62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43",
        "ETH": "ff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace",
        "XAU": "765d2ba906dbc32ca17cc11f5310a89e9ee1f6420508c63861f2f8ba4ee34bb2",
        "SOL": "ef0d8b6fda2ceba41da15d4095d1da392a0d2f8ed0c6c7bc0f4cfac8c280b56d",
    }

    def __init__(self, timeout_seconds: float = 8.0, session: requests.Session | None = None):
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def supports(self, asset: str) -> bool:
        return asset.upper() in self._ASSET_TO_TOKEN_ID_MAP

    def get_last_price(self, *, asset: str) -> tuple[float, datetime]:
        asset = asset.upper()
        token_id = self._ASSET_TO_TOKEN_ID_MAP.get(asset)
        if token_id is None:
            raise PriceUnavailable(asset, "unsupported asset")

        try:
            response = self.session.get(
                self._LATEST_PRICE_URL,
                timeout=self.timeout_seconds,
                params={"ids[]": token_id},
            )
            response.raise_for_status()

            root = response.json()
            if len(root) != 1:
                raise ValueError(f"only one entry must be received: {root}")

            entry = root[0]["price"]
            price = int(entry["price"]) * (10 ** int(entry["expo"]))
            published = entry.get("publish_time")
        except Exception as error:
            raise PriceUnavailable(asset, str(error)) from error

        timestamp = (
            datetime.fromtimestamp(int(published), tz=timezone.utc)
            if published is not None else datetime.now(timezone.utc)
        )
        return price, timestamp


class PythPriceFeed(PriceFeed):
    def __init__(self, client: PythClient | None = None):
        self.client = client or PythClient()

    def current_price(self, symbol: str) -> PriceSample | None:
        try:
            price, timestamp = self.client.get_last_price(asset=symbol)
        except PriceUnavailable as exc:
            logger.warning("Pyth price unavailable: %s", exc)
            return None
        return PriceSample(symbol=symbol.upper(), price=price, timestamp=timestamp, source="pyth")


def build_pyth_feed(settings: FeedSettings) -> PriceFeed:
    return PythPriceFeed(PythClient(timeout_seconds=settings.timeout_seconds))
