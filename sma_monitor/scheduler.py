"""
Fixed‑rate cycle scheduler.

One asyncio task issues cycles serially: cycle 0 fires as soon as the task
runs, cycle *k* roughly ``k * interval_s`` later.  A cycle that overruns its
interval is followed immediately by the next one and the cadence re‑anchors
from there; cycles never overlap and missed ticks are not replayed.

Life‑cycle
----------
``CREATED → RUNNING → STOPPING_GRACEFUL | STOPPING_FORCED → STOPPED``

``stop(timeout)`` asks the loop to finish at the next cycle boundary and
waits up to *timeout* seconds; if the in‑flight cycle is still running it
is cancelled.  Source fetches and aggregator updates are synchronous, so a
cancellation can only land between them, never inside a window update.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import math
from typing import List, Optional, Sequence

from sma_monitor import metrics
from sma_monitor.connectors.base import SampleSource
from sma_monitor.errors import InvalidConfiguration, SourceUnavailable
from sma_monitor.models import now_ms
from sma_monitor.processors.sma import WindowAggregator
from sma_monitor.sinks.base import ResultSink

logger = logging.getLogger(__name__)

__all__ = ["Scheduler", "SchedulerState", "DEFAULT_GRACE_S"]

DEFAULT_GRACE_S = 5.0


class SchedulerState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPING_GRACEFUL = "stopping_graceful"
    STOPPING_FORCED = "stopping_forced"
    STOPPED = "stopped"


class Scheduler:
    """Drives source → aggregator → sink for every symbol, every interval."""

    def __init__(
        self,
        source: SampleSource,
        aggregator: WindowAggregator,
        sink: ResultSink,
    ):
        self.source = source
        self.aggregator = aggregator
        self.sink = sink

        self.symbols: List[str] = []
        self.interval_s: float = 0.0
        self.cycles = 0

        self._state = SchedulerState.CREATED
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._stop_lock: Optional[asyncio.Lock] = None
        self._graceful: Optional[bool] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    # ------------------------------------------------------------------ #
    # life‑cycle                                                         #
    # ------------------------------------------------------------------ #
    async def start(self, symbols: Sequence[str], interval_s: float):
        """
        Validate the run parameters and spawn the cycle task.

        :raises InvalidConfiguration: empty *symbols* or non‑positive interval
        :raises RuntimeError: the scheduler was already started or stopped
        """
        if self._state is not SchedulerState.CREATED:
            raise RuntimeError(f"cannot start scheduler in state {self._state.value}")
        symbols = list(symbols)
        if not symbols:
            raise InvalidConfiguration("at least one symbol is required")
        if isinstance(interval_s, bool) or not isinstance(interval_s, (int, float)):
            raise InvalidConfiguration(f"interval_s must be a number, got {interval_s!r}")
        if not math.isfinite(interval_s) or interval_s <= 0:
            raise InvalidConfiguration(
                f"interval_s must be a positive finite number, got {interval_s}"
            )

        self.symbols = symbols
        self.interval_s = float(interval_s)
        self._stop_event = asyncio.Event()
        self._stop_lock = asyncio.Lock()
        self._state = SchedulerState.RUNNING
        self._task = asyncio.create_task(self._run(), name="Scheduler._run")
        self._task.add_done_callback(self._on_task_done)
        logger.info(
            "Scheduler started: %d symbol(s) every %.3gs", len(symbols), self.interval_s
        )

    async def stop(self, timeout: float = DEFAULT_GRACE_S) -> bool:
        """
        Stop issuing cycles. Returns ``True`` if the in‑flight cycle (if any)
        finished within *timeout*, ``False`` if it had to be cancelled.

        Safe to call repeatedly; later calls return the first outcome.
        """
        if self._stop_lock is None:
            # never started
            self._state = SchedulerState.STOPPED
            self._graceful = True
            return True

        async with self._stop_lock:
            if self._state is SchedulerState.STOPPED:
                return bool(self._graceful)

            self._state = SchedulerState.STOPPING_GRACEFUL
            self._stop_event.set()
            done, _ = await asyncio.wait({self._task}, timeout=timeout)
            self._graceful = bool(done)
            if not done:
                self._state = SchedulerState.STOPPING_FORCED
                logger.warning(
                    "Cycle still running after %.3gs – cancelling", timeout
                )
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task

            self._state = SchedulerState.STOPPED
            logger.info(
                "Scheduler stopped (%s) after %d cycle(s)",
                "graceful" if self._graceful else "forced",
                self.cycles,
            )
            return self._graceful

    async def wait_stopped(self):
        """Block until the cycle task has exited."""
        if self._task is not None:
            await asyncio.wait({self._task})

    # ------------------------------------------------------------------ #
    # cycle loop                                                         #
    # ------------------------------------------------------------------ #
    async def _run(self):
        loop = asyncio.get_running_loop()
        next_fire = loop.time()
        while not self._stop_event.is_set():
            await self.run_cycle()

            next_fire += self.interval_s
            now = loop.time()
            if next_fire < now:
                metrics.OVERRUNS.inc()
                logger.warning(
                    "Cycle overran its %.3gs interval by %.3fs",
                    self.interval_s,
                    now - next_fire,
                )
                next_fire = now
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), next_fire - now)

    async def run_cycle(self):
        """Sample, aggregate and emit every configured symbol once."""
        await self._sink_hook("begin_cycle", now_ms())
        for symbol in self.symbols:
            await self._process(symbol)
        await self._sink_hook("end_cycle")
        self.cycles += 1
        metrics.CYCLES.inc()

    async def _process(self, symbol: str):
        try:
            sample = self.source.next(symbol)
        except SourceUnavailable as exc:
            metrics.FAILURES.labels(symbol, "source").inc()
            logger.warning("Skipping %s this cycle – source unavailable: %s", symbol, exc)
            return
        except Exception as exc:  # noqa: BLE001
            metrics.FAILURES.labels(symbol, "source").inc()
            logger.exception("Unexpected error fetching %s: %s", symbol, exc)
            return

        try:
            result = self.aggregator.analyze(sample)
        except Exception as exc:  # noqa: BLE001
            metrics.FAILURES.labels(symbol, "aggregate").inc()
            logger.exception("Could not aggregate %s sample %r: %s", symbol, sample, exc)
            return

        logger.debug("%s = %s (sma=%s)", symbol, result.sample_value, result.average)
        if result.ready:
            metrics.LAST_AVERAGE.labels(symbol).set(result.average)

        try:
            await self.sink.emit(result)
        except Exception as exc:  # noqa: BLE001
            metrics.FAILURES.labels(symbol, "sink").inc()
            logger.exception("Sink failed for %s: %s", symbol, exc)

    async def _sink_hook(self, hook: str, *args):
        try:
            await getattr(self.sink, hook)(*args)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Sink %s() failed: %s", hook, exc)

    def _on_task_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduler loop crashed", exc_info=exc)
