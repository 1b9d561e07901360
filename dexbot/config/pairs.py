"""Strategy pair configuration loaded from YAML.

File path via env `DEXBOT_CONFIG`, default `configs/bot.yaml`. The file maps a
strategy key (gridBot, spikeBot, swapper, marketMaker) to its section; each
section carries a `pairs` list. Numeric fields accept numbers or numeric strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from dexbot.config.config import ConfigError
from dexbot.core.decimal_math import to_decimal


@dataclass(frozen=True)
class GridPairConfig:
    symbol: str
    upper_limit: Decimal
    lower_limit: Decimal
    grid_levels: int
    bid_amount_per_level: Decimal


@dataclass(frozen=True)
class SpikePairConfig:
    symbol: str
    deviation_pct: Decimal
    levels: int
    order_amount: Decimal


@dataclass(frozen=True)
class SpikeBotConfig:
    ma_window: int
    rebalance_threshold_pct: Decimal
    pairs: Tuple[SpikePairConfig, ...]


@dataclass(frozen=True)
class SwapPairConfig:
    symbol: str
    base: str
    quote: str
    quote_amount_per_swap: Decimal
    quote_max_hold: Decimal
    quote_min_hold: Decimal
    quote_buy_max_threshold: Decimal
    quote_sell_min_threshold: Decimal


@dataclass(frozen=True)
class MarketMakerPairConfig:
    symbol: str
    grid_levels: int
    grid_interval: Decimal
    base: Decimal
    order_side: int
    bid_amount_per_level: Decimal


def load_strategy_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"strategy config file not found: {path}")
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping of strategy sections")
    return data


def load_strategy_section(path: str, strategy: str) -> Dict[str, Any]:
    section = load_strategy_file(path).get(strategy)
    if not isinstance(section, dict):
        raise ConfigError(f"no '{strategy}' section in {path}")
    return section


def _where(idx: int, pair: Dict[str, Any], strategy: str) -> str:
    symbol = pair.get("symbol")
    return f"{strategy} pair {symbol}" if symbol else f"{strategy} pair with index {idx}"


def _decimal(pair: Dict[str, Any], key: str, where: str) -> Decimal:
    try:
        return to_decimal(pair[key])
    except ValueError as exc:
        raise ConfigError(f"{where}: '{key}' must be numeric, got {pair[key]!r}") from exc


def _int(pair: Dict[str, Any], key: str, where: str) -> int:
    value = _decimal(pair, key, where)
    if value != value.to_integral_value():
        raise ConfigError(f"{where}: '{key}' must be an integer, got {pair[key]!r}")
    return int(value)


def _require(pairs: Any, strategy: str, required: Tuple[str, ...]) -> List[Tuple[int, Dict[str, Any], str]]:
    if not isinstance(pairs, list):
        raise ConfigError(f"{strategy}.pairs must be a list")
    checked = []
    for idx, pair in enumerate(pairs):
        if not isinstance(pair, dict):
            raise ConfigError(f"{strategy} pair with index {idx} must be a mapping")
        if pair.get("symbol") in (None, ""):
            raise ConfigError(f"Market symbol option is missing for {strategy} pair with index {idx}")
        where = _where(idx, pair, strategy)
        missing = [key for key in required if pair.get(key) in (None, "")]
        if missing:
            raise ConfigError(f"Options are missing for {where}: {', '.join(missing)}")
        checked.append((idx, pair, where))
    return checked


def parse_grid_pairs(section: Dict[str, Any]) -> List[GridPairConfig]:
    result = []
    required = ("upperLimit", "lowerLimit", "gridLevels", "bidAmountPerLevel")
    for _, pair, where in _require(section.get("pairs"), "gridBot", required):
        cfg = GridPairConfig(
            symbol=str(pair["symbol"]),
            upper_limit=_decimal(pair, "upperLimit", where),
            lower_limit=_decimal(pair, "lowerLimit", where),
            grid_levels=_int(pair, "gridLevels", where),
            bid_amount_per_level=_decimal(pair, "bidAmountPerLevel", where),
        )
        if cfg.grid_levels <= 0:
            raise ConfigError(f"{where}: 'gridLevels' must be > 0")
        if cfg.upper_limit <= cfg.lower_limit:
            raise ConfigError(f"{where}: 'upperLimit' must be greater than 'lowerLimit'")
        if cfg.bid_amount_per_level <= 0:
            raise ConfigError(f"{where}: 'bidAmountPerLevel' must be > 0")
        result.append(cfg)
    return result


def parse_spike_config(section: Dict[str, Any]) -> SpikeBotConfig:
    head = {"maWindow": section.get("maWindow", 20), "rebalanceThresholdPct": section.get("rebalanceThresholdPct", 1.0)}
    ma_window = _int(head, "maWindow", "spikeBot")
    threshold = _decimal(head, "rebalanceThresholdPct", "spikeBot")
    if ma_window <= 0:
        raise ConfigError("spikeBot: 'maWindow' must be > 0")
    if threshold <= 0:
        raise ConfigError("spikeBot: 'rebalanceThresholdPct' must be > 0")

    pairs = []
    for _, pair, where in _require(section.get("pairs"), "spikeBot", ("deviationPct", "levels", "orderAmount")):
        cfg = SpikePairConfig(
            symbol=str(pair["symbol"]),
            deviation_pct=_decimal(pair, "deviationPct", where),
            levels=_int(pair, "levels", where),
            order_amount=_decimal(pair, "orderAmount", where),
        )
        if cfg.levels <= 0:
            raise ConfigError(f"{where}: 'levels' must be > 0")
        if not (0 < cfg.deviation_pct * cfg.levels < 100):
            raise ConfigError(f"{where}: 'deviationPct' * 'levels' must be between 0 and 100")
        if cfg.order_amount <= 0:
            raise ConfigError(f"{where}: 'orderAmount' must be > 0")
        pairs.append(cfg)
    return SpikeBotConfig(ma_window=ma_window, rebalance_threshold_pct=threshold, pairs=tuple(pairs))


def parse_swap_pairs(section: Dict[str, Any]) -> List[SwapPairConfig]:
    result = []
    required = (
        "base", "quote", "quoteAmountPerSwap", "quoteMaxHold", "quoteMinHold",
        "quoteBuyMaxThreshold", "quoteSellMinThreshold",
    )
    for _, pair, where in _require(section.get("pairs"), "swapper", required):
        result.append(SwapPairConfig(
            symbol=str(pair["symbol"]),
            base=str(pair["base"]).upper(),
            quote=str(pair["quote"]).upper(),
            quote_amount_per_swap=_decimal(pair, "quoteAmountPerSwap", where),
            quote_max_hold=_decimal(pair, "quoteMaxHold", where),
            quote_min_hold=_decimal(pair, "quoteMinHold", where),
            quote_buy_max_threshold=_decimal(pair, "quoteBuyMaxThreshold", where),
            quote_sell_min_threshold=_decimal(pair, "quoteSellMinThreshold", where),
        ))
    return result


def parse_market_maker_pairs(section: Dict[str, Any]) -> List[MarketMakerPairConfig]:
    result = []
    required = ("gridLevels", "gridInterval", "bidAmountPerLevel")
    for _, pair, where in _require(section.get("pairs"), "marketMaker", required):
        raw = dict(pair)
        raw.setdefault("base", 0)
        raw.setdefault("orderSide", 0)
        cfg = MarketMakerPairConfig(
            symbol=str(pair["symbol"]),
            grid_levels=_int(raw, "gridLevels", where),
            grid_interval=_decimal(raw, "gridInterval", where),
            base=_decimal(raw, "base", where),
            order_side=_int(raw, "orderSide", where),
            bid_amount_per_level=_decimal(raw, "bidAmountPerLevel", where),
        )
        if cfg.grid_levels <= 0:
            raise ConfigError(f"{where}: 'gridLevels' must be > 0")
        if not (0 < cfg.grid_interval * cfg.grid_levels < 1):
            raise ConfigError(f"{where}: 'gridInterval' * 'gridLevels' must be between 0 and 1")
        if cfg.order_side not in (0, 1, 2):
            raise ConfigError(f"{where}: 'orderSide' must be 0 (both), 1 (buy) or 2 (sell)")
        if cfg.base < 0:
            raise ConfigError(f"{where}: 'base' must be >= 0")
        result.append(cfg)
    return result
