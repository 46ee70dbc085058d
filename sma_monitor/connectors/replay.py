"""
ReplaySource  –  feeds scripted values per symbol.

Handy for demos and tests:

```yaml
source:
  kind: replay
  series:
    X: [10, 20, 30, 40]
    Y: [5, null, 7]     # null = outage for that cycle
```
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Iterable, Optional

from sma_monitor.connectors.base import SampleSource
from sma_monitor.errors import SourceUnavailable
from sma_monitor.models import Sample


class ReplaySource(SampleSource):
    """Pops one scripted value per ``next()`` call."""

    def __init__(self, series: Dict[str, Iterable[Optional[float]]]):
        self._queues: Dict[str, Deque[Optional[float]]] = {
            sym: deque(values) for sym, values in series.items()
        }

    def next(self, symbol: str) -> Sample:
        q = self._queues.get(symbol)
        if q is None:
            raise SourceUnavailable(symbol, "unknown symbol")
        if not q:
            raise SourceUnavailable(symbol, "series exhausted")
        value = q.popleft()
        if value is None:
            raise SourceUnavailable(symbol, "scripted outage")
        return Sample(symbol, value)

    def remaining(self, symbol: str) -> int:
        return len(self._queues.get(symbol, ()))
