"""
SMA Monitor main entry point.

* ``asyncio.run()`` drives the whole service
* pluggable log‑level via --log‑level
* CLI flags override the YAML monitor section
* SIGINT / SIGTERM → ``Scheduler.stop(shutdown_grace_s)``; the process only
  exits once the scheduler has stopped and sinks are closed
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import List

from sma_monitor import metrics
from sma_monitor.config import apply_overrides, load_config
from sma_monitor.connectors.base import SampleSource
from sma_monitor.connectors.replay import ReplaySource
from sma_monitor.connectors.simulated import SimulatedSource
from sma_monitor.errors import InvalidConfiguration
from sma_monitor.processors.sma import WindowAggregator
from sma_monitor.scheduler import Scheduler
from sma_monitor.sinks.base import FanoutSink, ResultSink
from sma_monitor.sinks.console import ConsoleSink
from sma_monitor.sinks.file_sink import FileSink

logger = logging.getLogger("sma_monitor.main")


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def create_source(cfg: dict) -> SampleSource:
    src = cfg["source"]
    if src["kind"] == "replay":
        return ReplaySource(src["series"])
    return SimulatedSource(
        src["initial_prices"],
        seed=src["seed"],
        max_step=src["max_step"],
    )


def create_sinks(cfg: dict) -> List[ResultSink]:
    sinks: List[ResultSink] = []
    if cfg["sinks"]["console"].get("enabled", True):
        sinks.append(ConsoleSink())

    file_cfg = dict(cfg["sinks"]["file"])
    if file_cfg.pop("enabled", False):
        sinks.append(FileSink(**file_cfg))
    return sinks


# --------------------------------------------------------------------------- #
# service runner                                                              #
# --------------------------------------------------------------------------- #
async def run_service(cfg: dict):
    mon = cfg["monitor"]
    aggregator = WindowAggregator(mon["window_size"])
    source = create_source(cfg)
    sink = FanoutSink(create_sinks(cfg))
    scheduler = Scheduler(source, aggregator, sink)

    if cfg["metrics"]["port"]:
        metrics.serve(cfg["metrics"]["port"])

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown():
        logger.info("Shutdown signal received – stopping scheduler …")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _shutdown)

    logger.info("Monitoring symbols: %s", ", ".join(mon["symbols"]))
    logger.info("Fetching data every %s seconds.", mon["interval_s"])
    logger.info("Calculating %d-period Simple Moving Average (SMA).", mon["window_size"])
    await scheduler.start(mon["symbols"], mon["interval_s"])

    # wait until shutdown requested
    await stop_event.wait()

    try:
        await scheduler.stop(mon["shutdown_grace_s"])
    finally:
        await sink.close()
        source.close()
    logger.info("SMA Monitor stopped.")


# --------------------------------------------------------------------------- #
# CLI                                                                         #
# --------------------------------------------------------------------------- #
def _symbol_list(value: str) -> List[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Real-time SMA monitor")
    p.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to configuration YAML (built-in defaults when omitted)",
    )
    p.add_argument("--symbols", type=_symbol_list, help="Comma-separated symbols")
    p.add_argument("--interval", type=float, help="Seconds between cycles")
    p.add_argument("--window", type=int, help="SMA period (samples per window)")
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Console log level (default INFO)",
    )
    return p.parse_args(argv)


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        cfg = apply_overrides(
            load_config(args.config),
            symbols=args.symbols,
            interval_s=args.interval,
            window_size=args.window,
        )
    except (FileNotFoundError, InvalidConfiguration) as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    try:
        asyncio.run(run_service(cfg))
    except KeyboardInterrupt:
        # already handled by signal handler on Unix; this is for Windows
        pass


if __name__ == "__main__":
    main()
