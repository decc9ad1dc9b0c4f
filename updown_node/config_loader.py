"""Config loader: resolve the operator's GameConfig at startup.

Resolution order:
1. ``GAME_CONFIG_MODULE`` env var (e.g. ``my_package.config:MyConfig``)
2. ``runtime_definitions.game_config:GameConfig`` (standard operator override)
3. ``updown_node.game_config:GameConfig`` (engine default)

Airdrop amounts can then be overridden per tier with
``AIRDROP_1ST_PLACE_AMOUNT`` .. ``AIRDROP_4TH_PLACE_AMOUNT``.
"""
from __future__ import annotations

import importlib
import logging
import os
from typing import Any

from updown_node.game_config import GameConfig

logger = logging.getLogger(__name__)

_TIER_AMOUNT_ENV = {
    1: "AIRDROP_1ST_PLACE_AMOUNT",
    2: "AIRDROP_2ND_PLACE_AMOUNT",
    3: "AIRDROP_3RD_PLACE_AMOUNT",
    4: "AIRDROP_4TH_PLACE_AMOUNT",
}

_cached_config: GameConfig | None = None


def load_config() -> GameConfig:
    """Load and cache the GameConfig instance."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    config = _resolve_config()
    apply_env_overrides(config)
    _cached_config = config
    return config


def _resolve_config() -> GameConfig:
    explicit = os.getenv("GAME_CONFIG_MODULE", "").strip()
    if explicit:
        config = _try_load(explicit)
        if config is not None:
            logger.info("Loaded config from GAME_CONFIG_MODULE=%s", explicit)
            return config
        logger.warning("GAME_CONFIG_MODULE=%s failed to load, trying fallbacks", explicit)

    config = _try_load("runtime_definitions.game_config:GameConfig")
    if config is not None:
        logger.info("Loaded config from runtime_definitions.game_config")
        return config

    logger.info("Using default GameConfig (no operator override found)")
    return GameConfig()


def _try_load(path: str) -> Any:
    """Import ``module.path:Attr``; classes are instantiated, instances used as-is."""
    try:
        if ":" in path:
            module_name, attr_name = path.rsplit(":", 1)
        else:
            module_name, attr_name = path, "GameConfig"

        module = importlib.import_module(module_name)
        target = getattr(module, attr_name)
        if isinstance(target, type):
            target = target()
    except (ImportError, AttributeError):
        return None
    except Exception as exc:
        logger.debug("Failed to load config from %s: %s", path, exc)
        return None

    if not isinstance(target, GameConfig):
        logger.warning("%s is not a GameConfig (got %s)", path, type(target).__name__)
        return None
    return target


def apply_env_overrides(config: GameConfig) -> None:
    for tier in config.airdrop_tiers:
        env_name = _TIER_AMOUNT_ENV.get(tier.tier)
        raw = os.getenv(env_name, "").strip() if env_name else ""
        if not raw:
            continue
        try:
            tier.amount = float(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: not a number", env_name, raw)


def reset_cache() -> None:
    """Clear the cached config (for testing)."""
    global _cached_config
    _cached_config = None
