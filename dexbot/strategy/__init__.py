"""
Strategy package.

This package contains the grid, spike, swapper and market-maker strategies,
their pure calculators, and the factory that selects one at startup.
"""

from dexbot.strategy.base import TradingStrategyBase
from dexbot.strategy.grid import GridBotStrategy
from dexbot.strategy.grid_engine import GridCalculator, GridReconciliation, LadderPlan
from dexbot.strategy.market_maker import MarketMakerStrategy
from dexbot.strategy.spike import SpikeBotStrategy
from dexbot.strategy.spike_engine import PairState, SpikeCalculator
from dexbot.strategy.strategy_factory import StrategyFactory
from dexbot.strategy.swapper import SwapperStrategy

__all__ = [
    "TradingStrategyBase",
    "GridBotStrategy",
    "GridCalculator",
    "GridReconciliation",
    "LadderPlan",
    "MarketMakerStrategy",
    "SpikeBotStrategy",
    "PairState",
    "SpikeCalculator",
    "StrategyFactory",
    "SwapperStrategy",
]
