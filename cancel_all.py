"""Script to list and cancel every open order of the configured account."""
import asyncio
import sys

from dexbot.config.config import Settings
from dexbot.execution.gateway import DexGateway
from dexbot.execution.signer import RelayTransactor
from dexbot.market_data.dex_api import MarketDataClient, MarketRegistry


async def main(assume_yes: bool) -> None:
    cfg = Settings.load()
    provider = MarketDataClient(cfg.api_root, cfg.light_api_root, cfg.rpc_endpoints, chain=cfg.chain)
    transactor = RelayTransactor(cfg.signer_url, cfg.username, permission=cfg.permission, token=cfg.signer_token)
    try:
        registry = await MarketRegistry.load(provider)

        print(f"=== Open Orders ({cfg.username}) ===")
        open_orders = await provider.fetch_open_orders(cfg.username)
        print(f'Total open orders: {len(open_orders)}{" (first page)" if len(open_orders) >= 250 else ""}')

        by_symbol = {}
        for o in open_orders:
            by_symbol[o.market_symbol] = by_symbol.get(o.market_symbol, 0) + 1
        for symbol, count in sorted(by_symbol.items()):
            print(f'  {symbol or "?"}: {count} orders')

        if not open_orders:
            return

        confirm = 'yes' if assume_yes else input("\nCancel ALL orders? Type 'yes' to confirm: ")
        if confirm.lower() != 'yes':
            print("Cancelled. No orders were modified.")
            return

        print("\nCancelling all orders...")
        gateway = DexGateway(transactor, registry, provider, cfg.username)
        cancelled = await gateway.cancel_all_orders()
        print(f"Cancelled {cancelled} orders")
        await gateway.withdraw_all()
        print("Withdrew dex balances")
        print("\n=== Done ===")
    finally:
        await transactor.close()
        await provider.close()


if __name__ == '__main__':
    asyncio.run(main(len(sys.argv) > 1 and sys.argv[1] == '--yes'))
