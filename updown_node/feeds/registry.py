from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping

from updown_node.feeds.contracts import PriceFeed


@dataclass(frozen=True)
class FeedSettings:
    provider: str
    timeout_seconds: float = 8.0
    options: dict[str, str] = field(default_factory=dict)


FeedFactory = Callable[[FeedSettings], PriceFeed]


class PriceFeedRegistry:
    def __init__(self) -> None:
        self._factories: dict[str, FeedFactory] = {}

    def register(self, provider: str, factory: FeedFactory, *, replace: bool = False) -> None:
        key = _normalize_provider(provider)
        if not replace and key in self._factories:
            raise ValueError(f"Feed provider '{key}' already registered")
        self._factories[key] = factory

    def providers(self) -> list[str]:
        return sorted(self._factories.keys())

    def create(
        self,
        provider: str,
        *,
        timeout_seconds: float = 8.0,
        options: Mapping[str, str] | None = None,
    ) -> PriceFeed:
        key = _normalize_provider(provider)
        factory = self._factories.get(key)
        if factory is None:
            allowed = ", ".join(self.providers()) or "<none>"
            raise ValueError(f"Unknown feed provider '{key}'. Allowed providers: {allowed}")
        return factory(FeedSettings(provider=key, timeout_seconds=timeout_seconds, options=dict(options or {})))


def _normalize_provider(value: str | None) -> str:
    key = str(value or "").strip().lower()
    if not key:
        raise ValueError("Feed provider cannot be empty")
    return key


def create_default_registry() -> PriceFeedRegistry:
    from updown_node.feeds.providers import build_binance_feed, build_pyth_feed

    registry = PriceFeedRegistry()
    registry.register("pyth", build_pyth_feed)
    registry.register("binance", build_binance_feed)
    return registry
