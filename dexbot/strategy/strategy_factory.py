"""StrategyFactory: the closed set of strategies, selected once at startup."""

from __future__ import annotations

from typing import Any

from dexbot.strategy.grid import GridBotStrategy
from dexbot.strategy.market_maker import MarketMakerStrategy
from dexbot.strategy.spike import SpikeBotStrategy
from dexbot.strategy.swapper import SwapperStrategy


class StrategyFactory:
    _registry: dict[str, Any] = {
        "gridBot": GridBotStrategy,
        "spikeBot": SpikeBotStrategy,
        "swapper": SwapperStrategy,
        "marketMaker": MarketMakerStrategy,
    }

    @classmethod
    def names(cls) -> list[str]:
        return list(cls._registry)

    @classmethod
    def create(cls, name: str, ctx):
        ctor = cls._registry.get(name)
        if ctor is None:
            raise ValueError(f"unknown strategy: {name}")
        return ctor(ctx)
