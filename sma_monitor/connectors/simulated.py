"""
Random‑walk price simulator.

Every call to ``next(symbol)`` moves the symbol's last price by a uniform
step in ``[-max_step, +max_step]`` and clamps the result into
``[floor, ceiling]``, so consecutive samples look like a plausible tick
stream without touching the network.
"""

from __future__ import annotations

import logging
import random
from typing import Dict, Optional

from sma_monitor.connectors.base import SampleSource
from sma_monitor.models import Sample

__all__ = ["SimulatedSource", "DEFAULT_PRICES"]

logger = logging.getLogger(__name__)

DEFAULT_PRICES: Dict[str, float] = {
    "AAPL": 170.0,
    "GOOG": 150.0,
    "MSFT": 420.0,
}


class SimulatedSource(SampleSource):
    def __init__(
        self,
        initial_prices: Optional[Dict[str, float]] = None,
        *,
        seed: Optional[int] = None,
        max_step: float = 1.0,
        floor: float = 1.0,
        ceiling: float = 500.0,
        default_price: float = 100.0,
    ):
        if floor > ceiling:
            raise ValueError("floor must not exceed ceiling")
        self._rng = random.Random(seed)
        self.max_step = max_step
        self.floor = floor
        self.ceiling = ceiling
        self.default_price = default_price

        # symbol -> last generated price
        self._last: Dict[str, float] = dict(DEFAULT_PRICES)
        self._last.update({k: float(v) for k, v in (initial_prices or {}).items()})

    def next(self, symbol: str) -> Sample:
        price = self._last.get(symbol, self.default_price)
        step = (self._rng.random() - 0.5) * 2 * self.max_step
        price = min(self.ceiling, max(self.floor, price + step))
        self._last[symbol] = price
        logger.debug("Simulated %s @ %.4f", symbol, price)
        return Sample(symbol, price)

    def last_price(self, symbol: str) -> Optional[float]:
        return self._last.get(symbol)
