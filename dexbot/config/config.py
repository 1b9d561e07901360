"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

STRATEGIES = ("gridBot", "spikeBot", "swapper", "marketMaker")


class ConfigError(ValueError):
    """Invalid or incomplete configuration. Fatal at startup."""


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _list_env(key: str, default: List[str]) -> List[str]:
    raw = os.getenv(key)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    username: str
    permission: str
    api_root: str
    light_api_root: str
    chain: str
    rpc_endpoints: List[str]
    signer_url: str
    signer_token: Optional[str]
    strategy: str
    config_path: str
    trade_interval_sec: float
    initial_settle_sec: float
    cancel_open_orders_on_exit: bool
    grid_placement: bool
    order_batch_delay_sec: float
    rebalance_pause_sec: float
    http_timeout: float
    state_dir: Optional[str]
    instance_id: Optional[str]
    dashboard_url: Optional[str]
    dashboard_api_key: Optional[str]
    dashboard_enabled: bool
    metrics_port: int
    log_file: Optional[str]
    log_level: str

    def dump(self) -> dict:
        """Return a dict of settings for logging, with secrets masked."""
        data = self.__dict__.copy()
        for key in ("signer_token", "dashboard_api_key"):
            if data.get(key):
                data[key] = "***"
        return data

    @property
    def dashboard_configured(self) -> bool:
        return bool(self.dashboard_url and self.dashboard_api_key and self.instance_id)

    @classmethod
    def load(cls) -> "Settings":
        cfg = cls(
            username=os.getenv("DEXBOT_USERNAME", ""),
            permission=os.getenv("DEXBOT_PERMISSION", "active"),
            api_root=os.getenv("DEXBOT_API_ROOT", "https://dex.api.mainnet.metalx.com/dex").rstrip("/"),
            light_api_root=os.getenv("DEXBOT_LIGHT_API_ROOT", "https://lightapi.eosamsterdam.net/api").rstrip("/"),
            chain=os.getenv("DEXBOT_CHAIN", "proton"),
            rpc_endpoints=_list_env("DEXBOT_RPC_ENDPOINTS", ["https://proton.eoscafeblock.com"]),
            signer_url=os.getenv("DEXBOT_SIGNER_URL", "http://127.0.0.1:8787").rstrip("/"),
            signer_token=os.getenv("DEXBOT_SIGNER_TOKEN") or None,
            strategy=os.getenv("DEXBOT_STRATEGY", "gridBot"),
            config_path=os.getenv("DEXBOT_CONFIG", "configs/bot.yaml"),
            trade_interval_sec=_float_env("DEXBOT_TRADE_INTERVAL_SEC", 10.0),
            initial_settle_sec=_float_env("DEXBOT_INITIAL_SETTLE_SEC", 15.0),
            cancel_open_orders_on_exit=env_bool("DEXBOT_CANCEL_OPEN_ORDERS_ON_EXIT", False),
            grid_placement=env_bool("DEXBOT_GRID_PLACEMENT", True),
            order_batch_delay_sec=_float_env("DEXBOT_ORDER_BATCH_DELAY_SEC", 2.0),
            rebalance_pause_sec=_float_env("DEXBOT_REBALANCE_PAUSE_SEC", 2.0),
            http_timeout=_float_env("DEXBOT_HTTP_TIMEOUT", 10.0),
            state_dir=os.getenv("DEXBOT_STATE_DIR") or None,
            instance_id=os.getenv("DEXBOT_INSTANCE_ID") or None,
            dashboard_url=(os.getenv("DEXBOT_DASHBOARD_URL") or "").rstrip("/") or None,
            dashboard_api_key=os.getenv("DEXBOT_DASHBOARD_API_KEY") or None,
            dashboard_enabled=env_bool("DEXBOT_DASHBOARD_ENABLED", True),
            metrics_port=_int_env("DEXBOT_METRICS_PORT", 0),
            log_file=os.getenv("DEXBOT_LOG_FILE", "dexbot.log") or None,
            log_level=os.getenv("DEXBOT_LOG_LEVEL", "INFO").upper(),
        )
        cfg._validate()
        _sanity_check(cfg)
        return cfg

    def _validate(self) -> None:
        if not self.username:
            raise ConfigError("DEXBOT_USERNAME must be set")
        if self.strategy not in STRATEGIES:
            raise ConfigError(f"DEXBOT_STRATEGY must be one of {', '.join(STRATEGIES)}, got {self.strategy!r}")
        if self.trade_interval_sec <= 0:
            raise ConfigError("DEXBOT_TRADE_INTERVAL_SEC must be > 0")
        if self.initial_settle_sec < 0:
            raise ConfigError("DEXBOT_INITIAL_SETTLE_SEC must be >= 0")
        if self.order_batch_delay_sec < 0 or self.rebalance_pause_sec < 0:
            raise ConfigError("Pause durations must be >= 0")
        if self.http_timeout <= 0:
            raise ConfigError("DEXBOT_HTTP_TIMEOUT must be > 0")
        if self.metrics_port < 0:
            raise ConfigError("DEXBOT_METRICS_PORT must be >= 0")
        if not self.rpc_endpoints:
            raise ConfigError("DEXBOT_RPC_ENDPOINTS must list at least one endpoint")

        if not (self.state_dir and self.instance_id):
            logging.getLogger("dexbot").warning(
                "DEXBOT_STATE_DIR or DEXBOT_INSTANCE_ID not set: tracked orders will not survive a restart"
            )


def _sanity_check(cfg: Settings) -> None:
    """
    Log critical settings once at startup so overrides are obvious.
    """
    logger = logging.getLogger("dexbot")
    payload = {
        "event": "config_loaded",
        "username": cfg.username,
        "strategy": cfg.strategy,
        "config_path": cfg.config_path,
        "trade_interval_sec": cfg.trade_interval_sec,
        "cancel_open_orders_on_exit": cfg.cancel_open_orders_on_exit,
        "grid_placement": cfg.grid_placement,
        "dashboard": cfg.dashboard_configured and cfg.dashboard_enabled,
    }
    logger.info(json.dumps(payload))
