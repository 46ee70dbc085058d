from __future__ import annotations

import abc
import logging
from typing import Iterable, List

from sma_monitor import metrics
from sma_monitor.models import AnalysisResult

logger = logging.getLogger(__name__)


class ResultSink(abc.ABC):
    """
    Abstract base class for result consumers.

    The Scheduler calls ``begin_cycle`` once, ``emit`` once per sampled
    symbol, then ``end_cycle``. Sinks must not block indefinitely.
    """

    @abc.abstractmethod
    async def emit(self, result: AnalysisResult):
        """Consume one result. Raise ``SinkFailure`` on delivery errors."""

    async def begin_cycle(self, ts: int):
        pass

    async def end_cycle(self):
        pass

    async def close(self):
        pass


class FanoutSink(ResultSink):
    """
    Forwards every call to each wrapped sink; a failing sink is logged
    and skipped so the remaining sinks still receive the result.
    """

    def __init__(self, sinks: Iterable[ResultSink]):
        self.sinks: List[ResultSink] = list(sinks)

    async def emit(self, result: AnalysisResult):
        for sink in self.sinks:
            try:
                await sink.emit(result)
            except Exception as exc:  # noqa: BLE001
                metrics.FAILURES.labels(result.symbol, "sink").inc()
                logger.exception(
                    "%s failed to emit %s: %s", type(sink).__name__, result.symbol, exc
                )

    async def begin_cycle(self, ts: int):
        await self._each("begin_cycle", ts)

    async def end_cycle(self):
        await self._each("end_cycle")

    async def close(self):
        await self._each("close")

    async def _each(self, hook: str, *args):
        for sink in self.sinks:
            try:
                await getattr(sink, hook)(*args)
            except Exception as exc:  # noqa: BLE001
                logger.exception("%s.%s() failed: %s", type(sink).__name__, hook, exc)
