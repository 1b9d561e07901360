"""
Market data package.

This package contains the dex HTTP API client and the market registry.
"""

from dexbot.market_data.dex_api import DexApiError, MarketDataClient, MarketRegistry

__all__ = [
    "DexApiError",
    "MarketDataClient",
    "MarketRegistry",
]
