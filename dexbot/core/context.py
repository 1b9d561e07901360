"""
Process-wide collaborators, built once at startup and handed to the strategy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dexbot.config.config import Settings
    from dexbot.execution.gateway import DexGateway
    from dexbot.market_data.dex_api import MarketDataClient, MarketRegistry
    from dexbot.monitoring.events import EventEmitter
    from dexbot.monitoring.metrics import BotMetrics
    from dexbot.state.state_atomic import AtomicTrackedOrderStore
    from dexbot.state.store import OrderStateWriter


@dataclass(frozen=True)
class TradingContext:
    settings: "Settings"
    registry: "MarketRegistry"
    provider: "MarketDataClient"
    gateway: "DexGateway"
    events: "EventEmitter"
    store: "AtomicTrackedOrderStore"
    order_state: "OrderStateWriter"
    metrics: "BotMetrics"

    @property
    def username(self) -> str:
        return self.settings.username
