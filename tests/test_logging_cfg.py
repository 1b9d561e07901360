"""
Tests for structured logging helpers.

Tests cover:
- Flat JSON file lines
- Background writer delivery and overflow
- Throttling of repetitive events per pair
- log_event payloads
"""

import json
import logging

from dexbot.infra.logging_cfg import BackgroundHandler, EventThrottle, FlatJsonFormatter, log_event


def _record(msg: str, level: int = logging.WARNING) -> logging.LogRecord:
    return logging.LogRecord("dexbot", level, __file__, 1, msg, None, None)


class _Collect(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestFlatJsonFormatter:
    """Formatter tests."""

    def test_event_fields_merged(self):
        """Test that a structured message becomes top-level fields."""
        line = FlatJsonFormatter().format(_record('{"event": "orders_placed", "pair": "XPR_XMD"}', logging.INFO))
        payload = json.loads(line)
        assert payload["level"] == "INFO"
        assert payload["logger"] == "dexbot"
        assert payload["event"] == "orders_placed"
        assert payload["pair"] == "XPR_XMD"
        assert "msg" not in payload

    def test_plain_text(self):
        """Test that plain text is kept under msg."""
        payload = json.loads(FlatJsonFormatter().format(_record("hello")))
        assert payload["msg"] == "hello"
        assert payload["level"] == "WARNING"

    def test_reserved_fields_win(self):
        """Test that an event cannot overwrite the record level."""
        payload = json.loads(FlatJsonFormatter().format(_record('{"event": "x", "level": 3}', logging.ERROR)))
        assert payload["level"] == "ERROR"


class TestBackgroundHandler:
    """Writer thread tests."""

    def test_records_reach_target(self):
        """Test that queued records are written once flushed."""
        target = _Collect()
        handler = BackgroundHandler(target)
        try:
            handler.handle(_record("one"))
            handler.handle(_record("two"))
            handler.flush()
            assert [r.getMessage() for r in target.records] == ["one", "two"]
        finally:
            handler.close()

    def test_closed_handler_ignores_records(self):
        """Test that emit after close is a no-op."""
        target = _Collect()
        handler = BackgroundHandler(target)
        handler.close()
        handler.emit(_record("late"))
        assert target.records == []
        assert handler.dropped == 0


class TestEventThrottle:
    """Throttle tests."""

    def test_repeat_suppressed_per_pair(self):
        """Test that a throttled event repeats once per pair inside the cooldown."""
        flt = EventThrottle(cooldown_sec=60)
        first = json.dumps({"event": "pair_warming_up", "pair": "XPR_XMD"})
        other = json.dumps({"event": "pair_warming_up", "pair": "XPR_XUSDC"})
        assert flt.filter(_record(first)) is True
        assert flt.filter(_record(first)) is False
        assert flt.filter(_record(other)) is True

    def test_other_events_pass(self):
        """Test that non-throttled events and plain text always pass."""
        flt = EventThrottle(cooldown_sec=60)
        fill = json.dumps({"event": "order_filled", "pair": "XPR_XMD"})
        assert flt.filter(_record(fill)) is True
        assert flt.filter(_record(fill)) is True
        assert flt.filter(_record("plain text")) is True

    def test_zero_cooldown(self):
        """Test that a zero cooldown lets every repeat through."""
        flt = EventThrottle(cooldown_sec=0)
        msg = json.dumps({"event": "http_retry"})
        assert flt.filter(_record(msg)) is True
        assert flt.filter(_record(msg)) is True


class TestLogEvent:
    """log_event tests."""

    def test_payload(self, caplog):
        """Test that keyword data lands in the JSON message."""
        logger = logging.getLogger("log_event_test")
        with caplog.at_level(logging.INFO, logger="log_event_test"):
            log_event(logger, "swap_executed", pair="XPRUSDC", side="BUY")
        assert json.loads(caplog.records[-1].getMessage()) == {
            "event": "swap_executed", "pair": "XPRUSDC", "side": "BUY",
        }
