"""
State persistence helpers.

Both records are instance-scoped JSON files written via a sibling temp file and
an atomic rename, so a reader never observes a partial write. Persistence is
optional: without a state dir and instance id every call is a no-op, and IO
errors are logged rather than raised.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from dexbot.core.json_utils import dumps_bytes, loads
from dexbot.core.models import OpenOrder, TrackedOrder

log = logging.getLogger("dexbot")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def atomic_write_json(path: Path, data: Dict[str, Any]) -> None:
    tmp = path.with_name(path.name + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp.write_bytes(dumps_bytes(data, pretty=True))
    os.replace(tmp, path)


def _instance_path(state_dir: Optional[str], instance_id: Optional[str], prefix: str) -> Optional[Path]:
    if not state_dir or not instance_id:
        return None
    safe = instance_id.replace("/", "_").replace(":", "_")
    return Path(state_dir) / f"{prefix}-{safe}.json"


class TrackedOrderStore:
    def __init__(self, state_dir: Optional[str], instance_id: Optional[str]) -> None:
        self.instance_id = instance_id
        self.path = _instance_path(state_dir, instance_id, "tracked-orders")

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def save(self, strategy_key: str, orders: Iterable[TrackedOrder]) -> None:
        if self.path is None:
            return
        record = {
            "instance_id": self.instance_id,
            "strategy": strategy_key,
            "timestamp": _now_iso(),
            "orders": [o.to_dict() for o in orders],
        }
        try:
            atomic_write_json(self.path, record)
        except (OSError, TypeError) as exc:
            log.error(json.dumps({"event": "state_save_error", "path": str(self.path), "err": str(exc)}))

    def load(self) -> List[TrackedOrder]:
        if self.path is None or not self.path.exists():
            return []
        try:
            record = loads(self.path.read_bytes())
        except (OSError, ValueError) as exc:
            log.error(json.dumps({"event": "state_load_error", "path": str(self.path), "err": str(exc)}))
            return []
        rows = record.get("orders") if isinstance(record, dict) else None
        if not isinstance(rows, list):
            log.error(json.dumps({"event": "state_load_error", "path": str(self.path), "err": "no orders list"}))
            return []
        orders = []
        for row in rows:
            try:
                orders.append(TrackedOrder.from_dict(row))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning(json.dumps({"event": "state_entry_skipped", "err": str(exc)}))
        return orders

    def cleanup(self) -> None:
        if self.path is None:
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            log.error(json.dumps({"event": "state_cleanup_error", "path": str(self.path), "err": str(exc)}))


@dataclass
class OrderStateEntry:
    symbol: str
    expected_orders: int
    open_orders: List[OpenOrder] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "expected_orders": self.expected_orders,
            "open_orders": [o.to_dict() for o in self.open_orders],
        }


class OrderStateWriter:
    """Point-in-time dump of exchange-reported open orders for external tooling."""

    def __init__(self, state_dir: Optional[str], instance_id: Optional[str]) -> None:
        self.instance_id = instance_id
        self.path = _instance_path(state_dir, instance_id, "order-state")

    def write(self, strategy_key: str, entries: Iterable[OrderStateEntry]) -> None:
        if self.path is None:
            return
        record = {
            "instance_id": self.instance_id,
            "strategy": strategy_key,
            "timestamp": _now_iso(),
            "markets": [e.to_dict() for e in entries],
        }
        try:
            atomic_write_json(self.path, record)
        except (OSError, TypeError) as exc:
            log.error(json.dumps({"event": "order_state_write_error", "path": str(self.path), "err": str(exc)}))
