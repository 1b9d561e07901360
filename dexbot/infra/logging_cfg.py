"""
Logging for dexbot.

Components log one JSON object per message (`{"event": ..., ...}`) on the
"dexbot" logger. Operators get a rich console; the log file gets one flat JSON
line per record, written by a background thread so a slow disk never stalls a
poll. Retry and warm-up chatter is rate-limited per event and pair on the
console only.
"""

from __future__ import annotations

import atexit
import json
import logging
import logging.handlers
import queue
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, Optional

from rich.logging import RichHandler

NOISY_EVENTS: FrozenSet[str] = frozenset({
    "http_retry",
    "pair_warming_up",
    "event_delivery_failed",
    "order_ids_unresolved",
})


def parse_event(record: logging.LogRecord) -> Optional[Dict[str, Any]]:
    """The record's structured payload, or None for plain-text messages."""
    cached = getattr(record, "_dexbot_event", False)
    if cached is not False:
        return cached
    try:
        data = json.loads(record.getMessage())
    except (ValueError, TypeError):
        data = None
    if not isinstance(data, dict):
        data = None
    record._dexbot_event = data
    return data


class FlatJsonFormatter(logging.Formatter):
    """
    One JSON object per line. Structured messages are merged into the top
    level; plain text lands under "msg".
    """

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
        }
        data = parse_event(record)
        if data is None:
            line["msg"] = record.getMessage()
        else:
            for key, value in data.items():
                line.setdefault(key, value)
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        return json.dumps(line, separators=(",", ":"), default=str)


class BackgroundHandler(logging.Handler):
    """
    Hands records to a writer thread that owns `target`.

    The queue is bounded; records arriving while it is full are counted and
    dropped. close() drains what is queued before closing the target.
    """

    _STOP = object()

    def __init__(self, target: logging.Handler, capacity: int = 10000) -> None:
        super().__init__()
        self.target = target
        self.dropped = 0
        self._records: queue.Queue = queue.Queue(maxsize=capacity)
        self._closed = False
        self._writer = threading.Thread(target=self._drain, name="dexbot-log-writer", daemon=True)
        self._writer.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord) -> None:
        if self._closed:
            return
        try:
            self._records.put_nowait(record)
        except queue.Full:
            self.dropped += 1

    def _drain(self) -> None:
        while True:
            item = self._records.get()
            try:
                if item is self._STOP:
                    return
                self.target.handle(item)
            except Exception:
                self.target.handleError(item)
            finally:
                self._records.task_done()

    def flush(self) -> None:
        """Block until everything queued so far has been written."""
        if not self._closed:
            self._records.join()
        self.target.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._records.put(self._STOP)
        self._writer.join(timeout=2.0)
        if self.dropped:
            sys.stderr.write(f"dexbot: {self.dropped} log records dropped (writer queue full)\n")
        self.target.close()
        super().close()


class EventThrottle(logging.Filter):
    """Let a noisy event through once per `cooldown_sec` for each (event, pair)."""

    def __init__(self, cooldown_sec: float = 30.0, events: Iterable[str] = NOISY_EVENTS) -> None:
        super().__init__()
        self.cooldown_sec = cooldown_sec
        self.events = frozenset(events)
        self._next_allowed: Dict[tuple, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        data = parse_event(record)
        if data is None or data.get("event") not in self.events:
            return True
        key = (data["event"], data.get("pair"))
        now = time.monotonic()
        if now < self._next_allowed.get(key, 0.0):
            return False
        self._next_allowed[key] = now + self.cooldown_sec
        return True


def build_logger(
    name: str = "dexbot",
    level: int = logging.INFO,
    file_path: Optional[str] = "dexbot.log",
    max_bytes: int = 20 * 1024 * 1024,
    backup_count: int = 5,
    background: bool = True,
    throttle_sec: float = 30.0,
) -> logging.Logger:
    """
    Configure the process logger. Calling it again only changes the level.

    Args:
        name: Logger name
        level: Minimum level for every handler
        file_path: Rotating JSON log file; None logs to the console only
        max_bytes: Rotation size of the log file
        backup_count: Rotated files kept
        background: Write the file from a background thread
        throttle_sec: Console cooldown for noisy events; 0 disables throttling
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    console = RichHandler(show_path=False, markup=False, rich_tracebacks=False)
    console.setFormatter(logging.Formatter("%(message)s"))
    if throttle_sec > 0:
        console.addFilter(EventThrottle(throttle_sec))
    handlers: list[logging.Handler] = [console]

    if file_path:
        file_handler = logging.handlers.RotatingFileHandler(
            file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(FlatJsonFormatter())
        handlers.append(BackgroundHandler(file_handler) if background else file_handler)

    for handler in handlers:
        handler.setLevel(level)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **data: Any) -> None:
    """
    Log a structured event.

    Usage:
        log_event(log, "order_filled", pair="XPR_XMD", side="BUY", price="0.005141")
    """
    logger.log(level, json.dumps({"event": event, **data}, default=str))
