"""
Monitoring and observability package.

This package contains dashboard events and Prometheus metrics.
"""

from dexbot.monitoring.events import (
    EventCategory,
    EventEmitter,
    EventSeverity,
    EventSinkConfig,
    EventType,
)
from dexbot.monitoring.metrics import BotMetrics, start_metrics_server

__all__ = [
    "EventCategory",
    "EventEmitter",
    "EventSeverity",
    "EventSinkConfig",
    "EventType",
    "BotMetrics",
    "start_metrics_server",
]
