"""Human‑readable cycle report on stdout."""

from __future__ import annotations

import sys
from datetime import datetime
from typing import Optional, TextIO

from sma_monitor.models import AnalysisResult, Sample
from sma_monitor.sinks.base import ResultSink

__all__ = ["ConsoleSink"]


class ConsoleSink(ResultSink):
    """
    Prints, per cycle::

        --- 12:00:05 ---
        Fetched: Symbol: AAPL, Price: 170.42, Time: 2026-10-19 12:00:05
          Analysis for AAPL: SMA(10) = 170.13
        Fetched: Symbol: NVDA, Price: 99.87, Time: 2026-10-19 12:00:05
          Analysis for NVDA: Not enough data for SMA yet.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def _print(self, line: str = ""):
        print(line, file=self.stream, flush=True)

    async def begin_cycle(self, ts: int):
        self._print("--- " + datetime.fromtimestamp(ts / 1000).strftime("%H:%M:%S") + " ---")

    async def emit(self, result: AnalysisResult):
        if result.timestamp is not None:
            sample = Sample(result.symbol, result.sample_value, result.timestamp)
        else:
            sample = Sample(result.symbol, result.sample_value)
        self._print(f"Fetched: {sample}")
        if result.ready:
            self._print(
                f"  Analysis for {result.symbol}: "
                f"SMA({result.window_size}) = {result.average:.2f}"
            )
        else:
            self._print(f"  Analysis for {result.symbol}: Not enough data for SMA yet.")

    async def end_cycle(self):
        self._print()
