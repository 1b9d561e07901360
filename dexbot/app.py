"""
Poll scheduler: builds the trading context, drives strategy.trade() on a fixed
interval and runs the graceful shutdown sequence.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

from dexbot.config.config import Settings
from dexbot.core.context import TradingContext
from dexbot.execution.gateway import DexGateway
from dexbot.execution.signer import RelayTransactor
from dexbot.infra.logging_cfg import log_event
from dexbot.market_data.dex_api import MarketDataClient, MarketRegistry
from dexbot.monitoring.events import EventEmitter, EventSinkConfig
from dexbot.monitoring.metrics import BotMetrics
from dexbot.state.state_atomic import AtomicTrackedOrderStore
from dexbot.state.store import OrderStateWriter
from dexbot.strategy.base import TradingStrategyBase

log = logging.getLogger("dexbot")

# Strategies that place nothing on the order book skip the post-start settle.
NO_SETTLE_STRATEGIES = ("swapper",)


async def build_context(cfg: Settings, metrics: Optional[BotMetrics] = None) -> TradingContext:
    """Construct every collaborator once; the market registry is loaded here."""
    provider = MarketDataClient(
        cfg.api_root,
        cfg.light_api_root,
        cfg.rpc_endpoints,
        chain=cfg.chain,
        timeout=cfg.http_timeout,
    )
    try:
        registry = await MarketRegistry.load(provider)
    except Exception:
        await provider.close()
        raise

    transactor = RelayTransactor(
        cfg.signer_url,
        cfg.username,
        permission=cfg.permission,
        token=cfg.signer_token,
        timeout=cfg.http_timeout,
    )
    events = EventEmitter(EventSinkConfig(
        url=cfg.dashboard_url,
        api_key=cfg.dashboard_api_key,
        instance_id=cfg.instance_id,
        enabled=cfg.dashboard_enabled,
    ))
    return TradingContext(
        settings=cfg,
        registry=registry,
        provider=provider,
        gateway=DexGateway(transactor, registry, provider, cfg.username),
        events=events,
        store=AtomicTrackedOrderStore(cfg.state_dir, cfg.instance_id),
        order_state=OrderStateWriter(cfg.state_dir, cfg.instance_id),
        metrics=metrics or BotMetrics(),
    )


async def close_context(ctx: TradingContext) -> None:
    await ctx.gateway.transactor.close()
    await ctx.provider.close()


async def _wait(stop: asyncio.Event, seconds: float) -> None:
    if seconds <= 0 or stop.is_set():
        return
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


async def poll_once(ctx: TradingContext, strategy: TradingStrategyBase) -> None:
    """
    One trade() pass. The pass is shielded: cancellation of the caller waits
    for the in-flight poll to finish before propagating.
    """
    started = time.monotonic()
    task = asyncio.ensure_future(strategy.trade())
    try:
        await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.gather(task, return_exceptions=True)
        raise
    except Exception as exc:
        err = str(exc) or type(exc).__name__
        log.error(json.dumps({"event": "poll_error", "strategy": strategy.key, "err": err}))
        ctx.metrics.errors_total.labels(pair="*", error_type=type(exc).__name__).inc()
        ctx.events.bot_error(f"{strategy.key} poll failed: {err}", {"error": err})
    finally:
        ctx.metrics.polls_total.labels(strategy=strategy.key).inc()
        ctx.metrics.poll_duration_sec.labels(strategy=strategy.key).observe(time.monotonic() - started)


async def shutdown(ctx: TradingContext, strategy: TradingStrategyBase) -> None:
    """Optional order cleanup, then bot_stopped and a final event flush."""
    cfg = ctx.settings
    if cfg.cancel_open_orders_on_exit:
        try:
            await strategy.cancel_own_orders()
        except Exception as exc:
            log.error(json.dumps({"event": "cancel_own_orders_failed", "err": str(exc)}))
        try:
            cancelled = await ctx.gateway.cancel_all_orders()
            log.info(json.dumps({"event": "cancel_all_orders", "count": cancelled}))
        except Exception as exc:
            log.error(json.dumps({"event": "cancel_all_orders_failed", "err": str(exc)}))

    ctx.events.bot_stopped(f"{strategy.key} stopped for {cfg.username}")
    await ctx.events.shutdown()
    log_event(
        log,
        "shutdown_complete",
        strategy=strategy.key,
        events_dropped_overflow=ctx.events.dropped_overflow,
        events_dropped_failed=ctx.events.dropped_failed,
    )


async def run_bot(
    ctx: TradingContext,
    strategy: TradingStrategyBase,
    options: Dict[str, Any],
    stop: asyncio.Event,
) -> None:
    """
    Initialize the strategy, trade once, settle, then poll until `stop` is set.

    Strategy initialization errors propagate before anything is started.
    """
    cfg = ctx.settings
    await strategy.initialize(options)

    ctx.events.start()
    ctx.events.bot_started(f"{strategy.key} started for {cfg.username}")
    ctx.events.config_loaded("Configuration loaded", {
        "strategy": strategy.key,
        "pairs": len(options.get("pairs") or []),
        "tradeIntervalSec": cfg.trade_interval_sec,
        "cancelOpenOrdersOnExit": cfg.cancel_open_orders_on_exit,
        "gridPlacement": cfg.grid_placement,
    })
    log_event(log, "bot_started", strategy=strategy.key, markets=len(ctx.registry), pairs=len(options.get("pairs") or []))

    try:
        await poll_once(ctx, strategy)
        if strategy.key not in NO_SETTLE_STRATEGIES:
            await _wait(stop, cfg.initial_settle_sec)
        while not stop.is_set():
            await poll_once(ctx, strategy)
            await _wait(stop, cfg.trade_interval_sec)
    finally:
        await shutdown(ctx, strategy)
