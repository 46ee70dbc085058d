"""Value objects passed between source, aggregator and sinks."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Sample:
    """One observation of *symbol*; ``timestamp`` is epoch‑ms."""

    symbol: str
    value: float
    timestamp: int = field(default_factory=now_ms)

    def __post_init__(self):
        object.__setattr__(self, "value", float(self.value))

    def __str__(self) -> str:
        ts = datetime.fromtimestamp(self.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
        return f"Symbol: {self.symbol}, Price: {self.value:.2f}, Time: {ts}"


@dataclass(frozen=True)
class AnalysisResult:
    """
    Outcome of feeding one sample to the aggregator.

    ``average`` is ``None`` until the symbol's window has filled.
    """

    symbol: str
    sample_value: float
    average: Optional[float]
    window_size: int
    timestamp: Optional[int] = None

    @property
    def ready(self) -> bool:
        return self.average is not None

    def as_row(self) -> dict:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "price": self.sample_value,
            "sma": self.average,
            "window_size": self.window_size,
        }
