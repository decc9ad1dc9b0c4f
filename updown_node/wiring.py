"""Explicit construction of the engine components around one database session."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlmodel import Session

from updown_node.config.runtime import RuntimeSettings
from updown_node.config_loader import load_config
from updown_node.db import (
    DBAirdropRepository,
    DBGameRepository,
    DBPredictionRepository,
    DBRankingRepository,
    DBScoreRepository,
)
from updown_node.feeds import CachingPriceFeed, PriceFeed, create_default_registry
from updown_node.game_config import GameConfig
from updown_node.payouts import HttpPayoutClient, PayoutClient, SimulatedPayoutClient
from updown_node.services.airdrop import AirdropDistributor
from updown_node.services.game import GameLifecycleManager
from updown_node.services.locks import KeyedLocks
from updown_node.services.ranking import RankingAggregator
from updown_node.services.resolver import PredictionResolver
from updown_node.services.score_ledger import ScoreAccumulator

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    config: GameConfig
    settings: RuntimeSettings
    price_feed: PriceFeed
    games: GameLifecycleManager
    resolver: PredictionResolver
    ledger: ScoreAccumulator
    rankings: RankingAggregator
    airdrops: AirdropDistributor


def build_price_feed(settings: RuntimeSettings) -> CachingPriceFeed:
    inner = create_default_registry().create(
        settings.feed_provider, timeout_seconds=settings.feed_timeout_seconds,
    )
    return CachingPriceFeed(inner, ttl_seconds=settings.price_cache_ttl_seconds)


def build_payout_client(settings: RuntimeSettings) -> PayoutClient:
    if settings.payout_gateway_url:
        return HttpPayoutClient(settings.payout_gateway_url, timeout_seconds=settings.payout_timeout_seconds)
    logger.warning("PAYOUT_GATEWAY_URL is not set, airdrops are simulated")
    return SimulatedPayoutClient()


def build_engine(
    session: Session,
    settings: RuntimeSettings | None = None,
    config: GameConfig | None = None,
    *,
    price_feed: PriceFeed | None = None,
    payout_client: PayoutClient | None = None,
    clock: Callable[[], datetime] | None = None,
    locks: KeyedLocks | None = None,
) -> Engine:
    settings = settings or RuntimeSettings.from_env()
    config = config or load_config()
    price_feed = price_feed or build_price_feed(settings)
    payout_client = payout_client or build_payout_client(settings)
    locks = locks if locks is not None else KeyedLocks()

    score_repository = DBScoreRepository(session)
    ranking_repository = DBRankingRepository(session)
    prediction_repository = DBPredictionRepository(session)

    ledger = ScoreAccumulator(score_repository, ledger_mode=config.ledger_mode, locks=locks, clock=clock)
    resolver = PredictionResolver(prediction_repository, ledger, rules=config.scoring, locks=locks, clock=clock)
    games = GameLifecycleManager(
        game_repository=DBGameRepository(session),
        prediction_repository=prediction_repository,
        price_feed=price_feed,
        resolver=resolver,
        config=config,
        locks=locks,
        clock=clock,
    )
    rankings = RankingAggregator(
        ranking_repository, score_repository, locks=locks, clock=clock,
        settle_seconds=config.ranking_settle_seconds,
    )
    airdrops = AirdropDistributor(
        ranking_aggregator=rankings,
        ranking_repository=ranking_repository,
        airdrop_repository=DBAirdropRepository(session),
        payout_client=payout_client,
        config=config,
        locks=locks,
        clock=clock,
    )
    return Engine(
        config=config,
        settings=settings,
        price_feed=price_feed,
        games=games,
        resolver=resolver,
        ledger=ledger,
        rankings=rankings,
        airdrops=airdrops,
    )
