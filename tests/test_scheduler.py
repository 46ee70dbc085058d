# tests/test_scheduler.py
import asyncio
import math

import pytest
from prometheus_client import REGISTRY

from conftest import RecordingSink
from sma_monitor.connectors.base import SampleSource
from sma_monitor.connectors.replay import ReplaySource
from sma_monitor.connectors.simulated import SimulatedSource
from sma_monitor.errors import InvalidConfiguration, SourceUnavailable
from sma_monitor.models import Sample
from sma_monitor.scheduler import SchedulerState


class FlakySource(SampleSource):
    """Fails for the symbols in *down*, counts up otherwise."""

    def __init__(self, down=()):
        self.down = set(down)
        self.calls = []
        self._n = 0

    def next(self, symbol):
        self.calls.append(symbol)
        if symbol in self.down:
            raise SourceUnavailable(symbol, "maintenance")
        self._n += 1
        return Sample(symbol, float(self._n))


class BrokenSource(SampleSource):
    def next(self, symbol):
        raise KeyError(symbol)


def test_run_cycle_processes_symbols_in_order(scheduler_factory, recording_sink):
    sched = scheduler_factory(ReplaySource({"A": [1], "B": [2], "C": [3]}), recording_sink)
    sched.symbols = ["C", "A", "B"]
    asyncio.run(sched.run_cycle())
    assert [r.symbol for r in recording_sink.results] == ["C", "A", "B"]
    assert sched.cycles == 1
    assert len(recording_sink.cycles) == 1


def test_unavailable_symbol_is_skipped_and_others_continue(scheduler_factory, recording_sink):
    src = ReplaySource({"Y": [1, None, 3], "Z": [10, 20, 30]})
    sched = scheduler_factory(src, recording_sink, window_size=2)
    sched.symbols = ["Y", "Z"]

    async def go():
        await sched.run_cycle()
        y_before = sched.aggregator.window("Y")
        await sched.run_cycle()
        assert sched.aggregator.window("Y") == y_before
        await sched.run_cycle()

    asyncio.run(go())
    assert [r.average for r in recording_sink.for_symbol("Z")] == [None, 15.0, 25.0]
    assert [r.sample_value for r in recording_sink.for_symbol("Y")] == [1.0, 3.0]
    assert sched.aggregator.window("Y") == (1.0, 3.0)


def test_unexpected_source_error_is_logged_not_raised(scheduler_factory, recording_sink, caplog):
    sched = scheduler_factory(BrokenSource(), recording_sink)
    sched.symbols = ["X"]
    asyncio.run(sched.run_cycle())
    assert recording_sink.results == []
    assert sched.cycles == 1
    assert "Unexpected error fetching X" in caplog.text


def test_source_failure_is_counted(scheduler_factory, recording_sink):
    label = {"symbol": "DOWN1", "stage": "source"}
    before = REGISTRY.get_sample_value("sma_failures_total", label) or 0
    sched = scheduler_factory(FlakySource(down={"DOWN1"}), recording_sink)
    sched.symbols = ["DOWN1", "UP"]
    asyncio.run(sched.run_cycle())
    assert REGISTRY.get_sample_value("sma_failures_total", label) == before + 1
    assert [r.symbol for r in recording_sink.results] == ["UP"]


def test_sink_failure_does_not_touch_aggregation(scheduler_factory):
    class ExplodingSink(RecordingSink):
        async def emit(self, result):
            await super().emit(result)
            raise RuntimeError("disk full")

    sink = ExplodingSink()
    sched = scheduler_factory(ReplaySource({"X": [1, 2, 3]}), sink, window_size=2)
    sched.symbols = ["X"]

    async def go():
        for _ in range(3):
            await sched.run_cycle()

    asyncio.run(go())
    assert sched.cycles == 3
    assert [r.average for r in sink.results] == [None, 1.5, 2.5]


def test_first_cycle_fires_immediately(scheduler_factory, recording_sink):
    sched = scheduler_factory(SimulatedSource(seed=1), recording_sink)

    async def go():
        await sched.start(["AAPL"], 10)
        await asyncio.sleep(0.05)
        assert sched.cycles == 1
        assert await sched.stop(1) is True

    asyncio.run(go())
    assert sched.state is SchedulerState.STOPPED


def test_cycles_repeat_until_stopped(scheduler_factory, recording_sink):
    sched = scheduler_factory(SimulatedSource(seed=1), recording_sink)

    async def go():
        await sched.start(["AAPL", "MSFT"], 0.01)
        assert sched.state is SchedulerState.RUNNING
        await asyncio.sleep(0.15)
        await sched.stop(1)
        seen = len(recording_sink.results)
        await asyncio.sleep(0.05)
        return seen

    seen = asyncio.run(go())
    assert sched.cycles >= 3
    assert seen == len(recording_sink.results)
    assert seen == 2 * sched.cycles


def test_stop_twice_is_a_noop(scheduler_factory, recording_sink):
    sched = scheduler_factory(SimulatedSource(seed=1), recording_sink)

    async def go():
        await sched.start(["AAPL"], 0.01)
        await asyncio.sleep(0.03)
        first = await sched.stop(1)
        cycles = sched.cycles
        second = await sched.stop(1)
        await asyncio.sleep(0.03)
        return first, second, cycles

    first, second, cycles = asyncio.run(go())
    assert first is True and second is True
    assert sched.cycles == cycles


def test_stop_before_start(scheduler_factory, recording_sink):
    sched = scheduler_factory(SimulatedSource(), recording_sink)

    async def go():
        return await sched.stop(), await sched.stop()

    assert asyncio.run(go()) == (True, True)
    assert sched.state is SchedulerState.STOPPED
    with pytest.raises(RuntimeError):
        asyncio.run(sched.start(["AAPL"], 1))


def test_slow_cycle_is_cancelled_after_timeout(scheduler_factory):
    async def go():
        sink = RecordingSink(block=asyncio.Event())
        sched = scheduler_factory(ReplaySource({"X": [1, 2, 3]}), sink)
        await sched.start(["X"], 0.01)
        await asyncio.sleep(0.02)
        graceful = await sched.stop(timeout=0.05)
        again = await sched.stop(timeout=0.05)
        return sched, sink, graceful, again

    sched, sink, graceful, again = asyncio.run(go())
    assert graceful is False
    assert again is False
    assert sched.state is SchedulerState.STOPPED
    assert sched.cycles == 0
    assert sched.aggregator.window("X") == (1.0,)


def test_in_flight_cycle_finishes_when_within_grace(scheduler_factory):
    async def go():
        sink = RecordingSink(delay=0.05)
        sched = scheduler_factory(ReplaySource({"X": [1, 2, 3]}), sink)
        await sched.start(["X"], 10)
        await asyncio.sleep(0.01)
        graceful = await sched.stop(timeout=1)
        return sched, graceful

    sched, graceful = asyncio.run(go())
    assert graceful is True
    assert sched.cycles == 1


def test_overrunning_cycles_never_overlap(scheduler_factory):
    before = REGISTRY.get_sample_value("sma_cycle_overruns_total") or 0

    async def go():
        sink = RecordingSink(delay=0.03)
        sched = scheduler_factory(SimulatedSource(seed=2), sink)
        await sched.start(["AAPL"], 0.01)
        await asyncio.sleep(0.2)
        await sched.stop(1)
        return sched, sink

    sched, sink = asyncio.run(go())
    assert not sink.overlapped
    assert sched.cycles >= 2
    assert REGISTRY.get_sample_value("sma_cycle_overruns_total") > before


@pytest.mark.parametrize("symbols,interval", [
    ([], 1), (["X"], 0), (["X"], -1), (["X"], "5"), (["X"], math.nan), (["X"], math.inf),
])
def test_start_rejects_bad_parameters(scheduler_factory, recording_sink, symbols, interval):
    sched = scheduler_factory(SimulatedSource(), recording_sink)
    with pytest.raises(InvalidConfiguration):
        asyncio.run(sched.start(symbols, interval))
    assert sched.state is SchedulerState.CREATED


def test_start_twice_is_rejected(scheduler_factory, recording_sink):
    sched = scheduler_factory(SimulatedSource(), recording_sink)

    async def go():
        await sched.start(["AAPL"], 1)
        try:
            with pytest.raises(RuntimeError):
                await sched.start(["AAPL"], 1)
        finally:
            await sched.stop(1)

    asyncio.run(go())


def test_wait_stopped_returns_once_loop_exits(scheduler_factory, recording_sink):
    sched = scheduler_factory(SimulatedSource(seed=1), recording_sink)

    async def go():
        await sched.start(["AAPL"], 0.01)
        waiter = asyncio.create_task(sched.wait_stopped())
        await asyncio.sleep(0.03)
        assert not waiter.done()
        await sched.stop(1)
        await asyncio.wait_for(waiter, 1)

    asyncio.run(go())
    assert sched.state is SchedulerState.STOPPED
    # never started: nothing to wait for
    asyncio.run(scheduler_factory(SimulatedSource(), recording_sink).wait_stopped())
