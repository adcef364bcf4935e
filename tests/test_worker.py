"""Tests for the interval print worker."""

import asyncio

import pytest

from kitchen_print.core.exceptions import ConfigurationError
from kitchen_print.services.processor import ProcessResult
from kitchen_print.worker import PrintWorker


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubProcessor:
    """Returns queued outcomes; an exception instance is raised instead."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def process_batch(self, config):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else ProcessResult()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestRunOnce:
    async def test_returns_batch_result(self, config, clock):
        processor = StubProcessor(ProcessResult(processed=2, succeeded=2))
        worker = PrintWorker(processor, config, clock=clock)

        result = await worker.run_once()

        assert result.succeeded == 2
        assert worker.state.runs == 1
        assert worker.state.last_result is result

    async def test_unreachable_printer_starts_cooldown(self, config, clock):
        processor = StubProcessor(ProcessResult(processed=1, printer_unreachable=True))
        worker = PrintWorker(processor, config, cooldown=60.0, clock=clock)

        await worker.run_once()
        assert worker.cooling_down

        clock.now += 30
        assert await worker.run_once() is None
        assert processor.calls == 1

        clock.now += 31
        assert not worker.cooling_down
        await worker.run_once()
        assert processor.calls == 2

    async def test_errors_are_counted_and_reset(self, config, clock):
        processor = StubProcessor(
            ConfigurationError("Printer IP address not configured"),
            RuntimeError("database gone"),
            ProcessResult(),
        )
        worker = PrintWorker(processor, config, clock=clock)

        assert await worker.run_once() is None
        assert await worker.run_once() is None
        assert worker.state.consecutive_errors == 2

        await worker.run_once()
        assert worker.state.consecutive_errors == 0


class TestRun:
    async def test_exits_after_too_many_errors(self, config, clock):
        processor = StubProcessor(*[RuntimeError("boom")] * 5)
        worker = PrintWorker(processor, config, interval=0, max_consecutive_errors=3, clock=clock)

        assert await asyncio.wait_for(worker.run(), timeout=5) == 1
        assert processor.calls == 3

    async def test_stop_ends_loop(self, config, clock):
        worker = PrintWorker(StubProcessor(), config, interval=60, clock=clock)

        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.05)
        worker.stop()

        assert await asyncio.wait_for(task, timeout=5) == 0
        assert worker.state.runs == 1

    async def test_stop_before_start(self, config, clock):
        processor = StubProcessor()
        worker = PrintWorker(processor, config, clock=clock)
        worker.stop()

        assert await worker.run() == 0
        assert processor.calls == 0
