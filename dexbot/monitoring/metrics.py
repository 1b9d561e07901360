"""
Prometheus metrics for the trading loop.

Organized into: orders, fills, strategy, operational.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class BotMetrics:
    """Per-process metrics on a private registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()

        # === Orders ===
        self.orders_submitted = Counter(
            'dexbot_orders_submitted_total',
            'Limit orders submitted to the dex contract',
            labelnames=['pair', 'side'],
            registry=reg
        )
        self.orders_cancelled = Counter(
            'dexbot_orders_cancelled_total',
            'Orders cancelled',
            labelnames=['pair', 'reason'],
            registry=reg
        )
        self.order_batches = Counter(
            'dexbot_order_batches_total',
            'Order batch transactions flushed',
            labelnames=['strategy'],
            registry=reg
        )

        # === Fills ===
        self.fills_total = Counter(
            'dexbot_fills_total',
            'Fills inferred from the open-order diff',
            labelnames=['pair', 'side'],
            registry=reg
        )
        self.swaps_total = Counter(
            'dexbot_swaps_total',
            'Swap transfers sent to the AMM',
            labelnames=['pair', 'side'],
            registry=reg
        )

        # === Strategy ===
        self.tracked_orders = Gauge(
            'dexbot_tracked_orders',
            'Orders this process believes are resting',
            labelnames=['pair'],
            registry=reg
        )
        self.moving_average = Gauge(
            'dexbot_moving_average',
            'Current spike moving average',
            labelnames=['pair'],
            registry=reg
        )
        self.rebalances_total = Counter(
            'dexbot_rebalances_total',
            'Full ladder rebalances',
            labelnames=['pair'],
            registry=reg
        )
        self.balance_low_total = Counter(
            'dexbot_balance_low_total',
            'Placements aborted for insufficient balance',
            labelnames=['pair'],
            registry=reg
        )

        # === Operational ===
        self.errors_total = Counter(
            'dexbot_errors_total',
            'Per-pair iteration errors',
            labelnames=['pair', 'error_type'],
            registry=reg
        )
        self.poll_duration_sec = Histogram(
            'dexbot_poll_duration_seconds',
            'Duration of one strategy trade() pass',
            labelnames=['strategy'],
            buckets=[0.5, 1, 2, 5, 10, 30, 60, 120],
            registry=reg
        )
        self.polls_total = Counter(
            'dexbot_polls_total',
            'Strategy polls executed',
            labelnames=['strategy'],
            registry=reg
        )

        self.registry = reg

    def get_registry(self):
        """Return the Prometheus registry for export."""
        return self.registry


def start_metrics_server(metrics: BotMetrics, port: int) -> bool:
    """Expose the registry over HTTP; port 0 disables the endpoint."""
    if port <= 0:
        return False
    start_http_server(port, registry=metrics.registry)
    return True
