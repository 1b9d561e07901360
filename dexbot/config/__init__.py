"""
Configuration package.

This package contains environment settings and the per-strategy pair sections.
"""

from dexbot.config.config import ConfigError, Settings
from dexbot.config.pairs import (
    GridPairConfig,
    MarketMakerPairConfig,
    SpikeBotConfig,
    SpikePairConfig,
    SwapPairConfig,
    load_strategy_section,
)

__all__ = [
    "ConfigError",
    "Settings",
    "GridPairConfig",
    "MarketMakerPairConfig",
    "SpikeBotConfig",
    "SpikePairConfig",
    "SwapPairConfig",
    "load_strategy_section",
]
