"""
WindowAggregator
================

Keeps a fixed‑capacity FIFO window of recent values per symbol and reports
the simple moving average once a window has filled.

    agg = WindowAggregator(3)
    agg.update("X", 10)   # average=None
    agg.update("X", 20)   # average=None
    agg.update("X", 30)   # average=20.0
    agg.update("X", 40)   # average=30.0  (window: 20, 30, 40)

The aggregator is purely reactive: no timers, no I/O.  It must only be
driven from one task at a time (the Scheduler's cycle loop).
"""

from __future__ import annotations

import logging
import math
from numbers import Real
from typing import Optional

from sma_monitor.errors import InvalidConfiguration
from sma_monitor.models import AnalysisResult, Sample

from .rolling_window import RollingWindowMixin

logger = logging.getLogger(__name__)

__all__ = ["WindowAggregator"]


class WindowAggregator(RollingWindowMixin):
    """Per‑symbol sliding window + SMA."""

    def __init__(self, window_size: int):
        if isinstance(window_size, bool) or not isinstance(window_size, int):
            raise InvalidConfiguration(
                f"window_size must be an integer, got {window_size!r}"
            )
        if window_size <= 0:
            raise InvalidConfiguration(
                f"window_size must be a positive integer, got {window_size}"
            )
        super().__init__(window_size)
        logger.debug("WindowAggregator initialised | window_size=%d", window_size)

    # ------------------------------------------------------------------ #
    # public API                                                         #
    # ------------------------------------------------------------------ #
    def update(
        self, symbol: str, value: float, timestamp: Optional[int] = None
    ) -> AnalysisResult:
        """
        Append *value* to *symbol*'s window and evict the oldest entry if
        the window is over capacity.

        Returns an ``AnalysisResult`` whose ``average`` is set only when the
        window holds exactly ``window_size`` values.

        :raises ValueError: *value* is not a finite number (window untouched)
        """
        if isinstance(value, bool) or not isinstance(value, Real):
            raise ValueError(f"{symbol}: value must be numeric, got {value!r}")
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"{symbol}: value must be finite, got {value!r}")

        dq = self._push(symbol, value)

        average = None
        if len(dq) == self.window_size:
            average = sum(dq) / len(dq)
        else:
            logger.debug(
                "%s warming up | size=%d/%d", symbol, len(dq), self.window_size
            )

        return AnalysisResult(
            symbol=symbol,
            sample_value=value,
            average=average,
            window_size=self.window_size,
            timestamp=timestamp,
        )

    def analyze(self, sample: Sample) -> AnalysisResult:
        return self.update(sample.symbol, sample.value, sample.timestamp)
