"""Check open orders and token balances of the configured account."""
import asyncio

from dexbot.config.config import Settings
from dexbot.market_data.dex_api import MarketDataClient


async def main() -> None:
    cfg = Settings.load()
    provider = MarketDataClient(cfg.api_root, cfg.light_api_root, cfg.rpc_endpoints, chain=cfg.chain)
    try:
        orders = await provider.fetch_open_orders(cfg.username)
        print(f"Open orders: {len(orders)}")
        symbols = {}
        for o in orders:
            symbols[o.market_symbol] = symbols.get(o.market_symbol, 0) + 1
        for s, n in sorted(symbols.items()):
            print(f"  {s or '?'}: {n}")

        print("\nBalances:")
        for b in await provider.fetch_balances(cfg.username):
            amount = b.get('amount', '0')
            if str(amount) not in ('0', '0.0', ''):
                print(f"  {b.get('currency', '?')}: {amount}")
    finally:
        await provider.close()


if __name__ == '__main__':
    asyncio.run(main())
