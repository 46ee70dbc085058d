"""Prometheus instruments shared by the scheduler and sinks."""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, start_http_server   # pip install prometheus-client

logger = logging.getLogger(__name__)

CYCLES = Counter("sma_cycles_total", "completed analysis cycles")
OVERRUNS = Counter(
    "sma_cycle_overruns_total", "cycles that took longer than the interval"
)
FAILURES = Counter(
    "sma_failures_total", "per-symbol processing failures", ["symbol", "stage"]
)
LAST_AVERAGE = Gauge("sma_last_average", "most recent SMA per symbol", ["symbol"])


def serve(port: int, addr: str = "0.0.0.0"):
    """Expose ``/metrics`` on *port* from a daemon thread."""
    start_http_server(port, addr=addr)
    logger.info("Prometheus metrics exposed on %s:%d", addr, port)
