"""
Dashboard event sink.

- Bounded in-memory queue (oldest events dropped on overflow)
- Periodic background flush in small batches
- Immediate flush for errors and start/stop events
- Bounded per-event delivery attempts, then drop
- Never blocks or fails the trading loop
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

import aiohttp

from dexbot.core.json_utils import dumps

logger = logging.getLogger("dexbot")


class EventCategory(str, Enum):
    TRADE = "trade"
    ORDER = "order"
    BALANCE = "balance"
    ERROR = "error"
    SYSTEM = "system"
    ALERT = "alert"


class EventSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class EventType(str, Enum):
    ORDER_PLACED = "order_placed"
    ORDER_FILLED = "order_filled"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_FAILED = "order_failed"
    BOT_STARTED = "bot_started"
    BOT_STOPPED = "bot_stopped"
    BOT_ERROR = "bot_error"
    BALANCE_LOW = "balance_low"
    BALANCE_UPDATED = "balance_updated"
    TRADE_EXECUTED = "trade_executed"
    GRID_PLACED = "grid_placed"
    GRID_ADJUSTED = "grid_adjusted"
    SWAP_EXECUTED = "swap_executed"
    CONFIG_LOADED = "config_loaded"
    MARKET_DATA_ERROR = "market_data_error"
    RPC_ERROR = "rpc_error"


IMMEDIATE_TYPES = {EventType.BOT_STARTED, EventType.BOT_STOPPED}


@dataclass
class DashboardEvent:
    instance_id: str
    category: EventCategory
    type: EventType
    severity: EventSeverity
    message: str
    data: Optional[Dict[str, Any]] = None
    attempts: int = 0

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "instanceId": self.instance_id,
            "category": self.category.value,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass
class EventSinkConfig:
    url: Optional[str] = None
    api_key: Optional[str] = None
    instance_id: Optional[str] = None
    enabled: bool = True
    flush_interval_sec: float = 5.0
    batch_size: int = 10
    max_attempts: int = 3
    max_queue: int = 1000
    request_timeout_sec: float = 10.0

    @property
    def active(self) -> bool:
        return bool(self.enabled and self.url and self.api_key and self.instance_id)


class EventEmitter:
    """
    Queues lifecycle events and delivers them to `<url>/api/events`.

    emit() is synchronous and cheap; delivery happens in flush(), driven by a
    background task started with start().
    """

    def __init__(self, config: Optional[EventSinkConfig] = None, session: Optional[aiohttp.ClientSession] = None) -> None:
        self.config = config or EventSinkConfig()
        self._queue: Deque[DashboardEvent] = deque(maxlen=max(1, self.config.max_queue))
        self._session = session
        self._owns_session = session is None
        self._flush_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._processing = False
        self.dropped_overflow = 0
        self.dropped_failed = 0

    @property
    def enabled(self) -> bool:
        return self.config.active

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    def start(self) -> None:
        if not self.enabled:
            logger.info(json.dumps({"event": "dashboard_events_disabled"}))
            return
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._flush_loop(), name="dashboard-events")
            logger.info(json.dumps({"event": "dashboard_events_enabled", "url": self.config.url}))

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.flush_interval_sec)
            await self.flush()

    async def shutdown(self) -> None:
        """Stop the timer, make a final delivery pass, release the HTTP session."""
        if self._flush_task is not None:
            self._flush_task.cancel()
            await asyncio.gather(self._flush_task, return_exceptions=True)
            self._flush_task = None
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self.flush()
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def emit(
        self,
        category: EventCategory,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not self.enabled:
            return
        if len(self._queue) == self._queue.maxlen:
            self.dropped_overflow += 1
            logger.warning(json.dumps({"event": "event_queue_overflow", "dropped": self.dropped_overflow}))
        self._queue.append(DashboardEvent(
            instance_id=str(self.config.instance_id),
            category=category,
            type=event_type,
            severity=severity,
            message=message,
            data=data,
        ))
        if severity is EventSeverity.ERROR or event_type in IMMEDIATE_TYPES:
            self._schedule_flush()

    def _schedule_flush(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.flush())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        if self._processing or not self._queue or not self.enabled:
            return
        self._processing = True
        try:
            while self._queue:
                batch: List[DashboardEvent] = []
                while self._queue and len(batch) < self.config.batch_size:
                    batch.append(self._queue.popleft())
                for idx, event in enumerate(batch):
                    if await self._send(event):
                        continue
                    event.attempts += 1
                    if event.attempts >= self.config.max_attempts:
                        self.dropped_failed += 1
                        logger.warning(json.dumps({
                            "event": "event_dropped",
                            "type": event.type.value,
                            "attempts": event.attempts,
                        }))
                        continue
                    # Endpoint unhealthy: requeue the rest of the batch in order and retry next flush.
                    for pending in reversed(batch[idx:]):
                        self._queue.appendleft(pending)
                    return
        finally:
            self._processing = False

    async def _send(self, event: DashboardEvent) -> bool:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_sec)
            )
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        try:
            async with self._session.post(
                f"{self.config.url}/api/events", data=dumps(event.to_payload()), headers=headers
            ) as resp:
                if resp.status < 300:
                    return True
                body = await resp.text()
                logger.warning(json.dumps({
                    "event": "event_delivery_failed",
                    "status": resp.status,
                    "body": body[:200],
                }))
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning(json.dumps({"event": "event_delivery_failed", "err": str(exc)}))
            return False

    # -- system --------------------------------------------------------------

    def bot_started(self, message: str = "Bot started") -> None:
        self.emit(EventCategory.SYSTEM, EventType.BOT_STARTED, EventSeverity.SUCCESS, message)

    def bot_stopped(self, message: str = "Bot stopped") -> None:
        self.emit(EventCategory.SYSTEM, EventType.BOT_STOPPED, EventSeverity.INFO, message)

    def bot_error(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.ERROR, EventType.BOT_ERROR, EventSeverity.ERROR, message, data)

    def config_loaded(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.SYSTEM, EventType.CONFIG_LOADED, EventSeverity.INFO, message, data)

    # -- orders --------------------------------------------------------------

    def order_placed(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.ORDER, EventType.ORDER_PLACED, EventSeverity.SUCCESS, message, data)

    def order_filled(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.TRADE, EventType.ORDER_FILLED, EventSeverity.SUCCESS, message, data)

    def order_cancelled(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.ORDER, EventType.ORDER_CANCELLED, EventSeverity.INFO, message, data)

    def order_failed(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.ORDER, EventType.ORDER_FAILED, EventSeverity.ERROR, message, data)

    # -- trades --------------------------------------------------------------

    def trade_executed(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.TRADE, EventType.TRADE_EXECUTED, EventSeverity.SUCCESS, message, data)

    def swap_executed(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.TRADE, EventType.SWAP_EXECUTED, EventSeverity.SUCCESS, message, data)

    # -- grid ----------------------------------------------------------------

    def grid_placed(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.ORDER, EventType.GRID_PLACED, EventSeverity.SUCCESS, message, data)

    def grid_adjusted(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.ORDER, EventType.GRID_ADJUSTED, EventSeverity.INFO, message, data)

    # -- balances ------------------------------------------------------------

    def balance_low(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.BALANCE, EventType.BALANCE_LOW, EventSeverity.WARNING, message, data)

    def balance_updated(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.BALANCE, EventType.BALANCE_UPDATED, EventSeverity.INFO, message, data)

    # -- errors --------------------------------------------------------------

    def market_data_error(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.ERROR, EventType.MARKET_DATA_ERROR, EventSeverity.ERROR, message, data)

    def rpc_error(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventCategory.ERROR, EventType.RPC_ERROR, EventSeverity.ERROR, message, data)
