"""
Entry point wiring all components.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys

from dexbot.config.config import ConfigError, Settings
from dexbot.config.pairs import load_strategy_section
from dexbot.infra.logging_cfg import build_logger
from dexbot.monitoring.metrics import BotMetrics, start_metrics_server
from dexbot.app import build_context, close_context, run_bot
from dexbot.strategy.strategy_factory import StrategyFactory

log = logging.getLogger("dexbot")


async def main() -> int:
    build_logger("dexbot", file_path=os.getenv("DEXBOT_LOG_FILE", "dexbot.log") or None)
    try:
        cfg = Settings.load()
        options = load_strategy_section(cfg.config_path, cfg.strategy)
    except ConfigError as exc:
        log.error(json.dumps({"event": "config_error", "err": str(exc)}))
        return 1
    build_logger("dexbot", level=getattr(logging, cfg.log_level, logging.INFO))

    metrics = BotMetrics()
    if start_metrics_server(metrics, cfg.metrics_port):
        log.info(json.dumps({"event": "metrics_server_started", "port": cfg.metrics_port}))

    try:
        ctx = await build_context(cfg, metrics)
    except Exception as exc:
        log.error(json.dumps({"event": "startup_failed", "err": str(exc)}))
        return 1
    strategy = StrategyFactory.create(cfg.strategy, ctx)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_stop() -> None:
        if not stop.is_set():
            log.info(json.dumps({"event": "shutdown_requested"}))
        stop.set()

    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop)
        except NotImplementedError:
            pass

    try:
        await run_bot(ctx, strategy, options, stop)
    except ConfigError as exc:
        log.error(json.dumps({"event": "config_error", "err": str(exc)}))
        return 1
    finally:
        await close_context(ctx)
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        print("\nBot stopped by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
