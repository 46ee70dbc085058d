# tests/conftest.py
import asyncio
import os
import sys

# Ensure project root is importable (so sma_monitor.* imports work when running from repo root)
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import pytest

from sma_monitor.sinks.base import ResultSink


class RecordingSink(ResultSink):
    """Keeps every result and cycle boundary it sees."""

    def __init__(self, delay=0.0, block=None):
        self.results = []
        self.cycles = []
        self.closed = False
        self.delay = delay
        self.block = block
        self.active = False
        self.overlapped = False

    async def begin_cycle(self, ts):
        if self.active:
            self.overlapped = True
        self.active = True
        self.cycles.append(ts)

    async def emit(self, result):
        self.results.append(result)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.block is not None:
            await self.block.wait()

    async def end_cycle(self):
        self.active = False

    async def close(self):
        self.closed = True

    def for_symbol(self, symbol):
        return [r for r in self.results if r.symbol == symbol]


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def aggregator_factory():
    from sma_monitor.processors.sma import WindowAggregator
    def make(window_size=3):
        return WindowAggregator(window_size)
    return make


@pytest.fixture
def scheduler_factory(aggregator_factory):
    from sma_monitor.scheduler import Scheduler
    def make(source, sink, window_size=3):
        return Scheduler(source, aggregator_factory(window_size), sink)
    return make
