"""
Async HTTP client for the off-chain DEX API, the light API and chain table reads.

All calls share one HTTP/2 client and retry transient failures with jittered
exponential backoff; exhaustion raises DexApiError.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import httpx

from dexbot.core.decimal_math import to_decimal
from dexbot.core.models import Market, OpenOrder

log = logging.getLogger("dexbot")


class DexApiError(Exception):
    """Market data could not be fetched or was unusable."""


class MarketDataClient:
    def __init__(
        self,
        api_root: str,
        light_api_root: str,
        rpc_endpoints: Sequence[str],
        chain: str = "proton",
        timeout: float = 10.0,
        attempts: int = 3,
        retry_backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_root = api_root.rstrip("/")
        self.light_api_root = light_api_root.rstrip("/")
        self.rpc_endpoints = [e.rstrip("/") for e in rpc_endpoints]
        self.chain = chain
        self.attempts = max(1, attempts)
        self.retry_backoff = retry_backoff
        # A shared client passed in is not closed by close().
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(http2=True, timeout=timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _request(self, method: str, urls: Sequence[str], **kwargs) -> httpx.Response:
        backoff = self.retry_backoff
        last_exc: Optional[Exception] = None
        for attempt in range(self.attempts):
            url = urls[attempt % len(urls)]
            try:
                resp = await self.client.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp
            except httpx.HTTPError as exc:
                last_exc = exc
                if attempt + 1 >= self.attempts:
                    break
                log.warning(json.dumps({"event": "http_retry", "url": url, "attempt": attempt + 1, "err": str(exc)}))
                await asyncio.sleep(backoff + random.uniform(0, backoff * 0.5))
                backoff *= 2
        raise DexApiError(f"{method} {urls[0]} failed after {self.attempts} attempts: {last_exc}") from last_exc

    async def _get_json(self, root: str, path: str, params: Optional[Dict[str, Any]] = None, unwrap: bool = True) -> Any:
        resp = await self._request("GET", [f"{root}{path}"], params=params)
        try:
            body = resp.json()
        except ValueError as exc:
            raise DexApiError(f"non-JSON response from {path}") from exc
        if unwrap:
            if not isinstance(body, dict) or "data" not in body:
                raise DexApiError(f"response from {path} has no 'data' field")
            return body["data"]
        return body

    # -- markets -------------------------------------------------------------

    async def fetch_markets(self) -> List[Market]:
        data = await self._get_json(self.api_root, "/v1/markets/all")
        markets = []
        for row in data or []:
            try:
                markets.append(Market.from_api(row))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning(json.dumps({"event": "market_row_skipped", "err": str(exc)}))
        return markets

    async def fetch_trades(self, symbol: str, count: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        data = await self._get_json(
            self.api_root, "/v1/trades/recent", {"symbol": symbol, "limit": count, "offset": offset}
        )
        return list(data or [])

    async def fetch_latest_price(self, symbol: str) -> Decimal:
        trades = await self.fetch_trades(symbol, 1)
        if not trades:
            raise DexApiError(f"no recent trades for {symbol}")
        try:
            price = to_decimal(trades[0]["price"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DexApiError(f"malformed trade row for {symbol}") from exc
        if not price.is_finite() or price <= 0:
            raise DexApiError(f"non-positive price {price} for {symbol}")
        return price

    async def fetch_order_book(self, symbol: str, limit: int = 100, step: int = 100000) -> Dict[str, List[Decimal]]:
        """Return {"bids": [...], "asks": [...]} price levels, best first."""
        data = await self._get_json(
            self.api_root, "/v1/orders/depth", {"symbol": symbol, "limit": limit, "step": step}
        )
        book: Dict[str, List[Decimal]] = {"bids": [], "asks": []}
        for side in ("bids", "asks"):
            for row in (data or {}).get(side, []) or []:
                try:
                    book[side].append(to_decimal(row["level"]))
                except (KeyError, TypeError, ValueError):
                    continue
        return book

    # -- orders --------------------------------------------------------------

    def _parse_orders(self, rows: Any, symbol: Optional[str] = None) -> List[OpenOrder]:
        orders = []
        for row in rows or []:
            try:
                orders.append(OpenOrder.from_api(row, symbol))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning(json.dumps({"event": "open_order_row_skipped", "symbol": symbol, "err": str(exc)}))
        return orders

    async def fetch_open_orders(self, account: str, limit: int = 250, offset: int = 0) -> List[OpenOrder]:
        data = await self._get_json(
            self.api_root, "/v1/orders/open", {"limit": limit, "offset": offset, "account": account}
        )
        return self._parse_orders(data)

    async def fetch_pair_open_orders(self, account: str, symbol: str) -> List[OpenOrder]:
        data = await self._get_json(
            self.api_root,
            "/v1/orders/open",
            {"limit": 250, "offset": 0, "account": account, "symbol": symbol},
        )
        return self._parse_orders(data, symbol)

    # -- balances ------------------------------------------------------------

    async def fetch_balances(self, account: str) -> List[Dict[str, Any]]:
        body = await self._get_json(self.light_api_root, f"/balances/{self.chain}/{account}", unwrap=False)
        return list((body or {}).get("balances", []))

    async def fetch_token_balance(self, account: str, contract: str, code: str) -> Decimal:
        resp = await self._request(
            "GET", [f"{self.light_api_root}/tokenbalance/{self.chain}/{account}/{contract}/{code}"]
        )
        text = resp.text.strip().strip('"')
        if not text:
            return Decimal("0")
        try:
            return to_decimal(text)
        except ValueError as exc:
            raise DexApiError(f"malformed balance for {code}@{contract}: {text!r}") from exc

    # -- chain ---------------------------------------------------------------

    async def fetch_swap_pools(self) -> Dict[str, Dict[str, Any]]:
        """Swap pools from proton.swaps, keyed by liquidity-token symbol code."""
        payload = {
            "json": True,
            "code": "proton.swaps",
            "scope": "proton.swaps",
            "table": "pools",
            "lower_bound": "",
            "upper_bound": "",
            "index_position": 1,
            "key_type": "i64",
            "limit": -1,
            "reverse": False,
            "show_payer": False,
        }
        urls = [f"{e}/v1/chain/get_table_rows" for e in self.rpc_endpoints]
        resp = await self._request("POST", urls, json=payload)
        try:
            rows = resp.json().get("rows") or []
        except (ValueError, AttributeError) as exc:
            raise DexApiError("malformed get_table_rows response") from exc
        pools: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            lt_symbol = str(row.get("lt_symbol", ""))
            if "," not in lt_symbol:
                continue
            pools[lt_symbol.split(",", 1)[1]] = row
        log.info(json.dumps({"event": "swap_pools_fetched", "count": len(pools)}))
        return pools


class MarketRegistry:
    """Read-only market lookup, populated once at startup."""

    def __init__(self, markets: Sequence[Market] = ()) -> None:
        self._by_id: Dict[int, Market] = {}
        self._by_symbol: Dict[str, Market] = {}
        for market in markets:
            self._by_id[market.market_id] = market
            self._by_symbol[market.symbol] = market

    @classmethod
    async def load(cls, client: MarketDataClient) -> "MarketRegistry":
        markets = await client.fetch_markets()
        log.info(json.dumps({"event": "markets_loaded", "count": len(markets)}))
        return cls(markets)

    def by_id(self, market_id: int) -> Optional[Market]:
        return self._by_id.get(market_id)

    def by_symbol(self, symbol: str) -> Optional[Market]:
        return self._by_symbol.get(symbol)

    def __len__(self) -> int:
        return len(self._by_symbol)
