from __future__ import annotations

import asyncio

import pytest

from layoutsync.collab.throttle import AsyncioScheduler, FlushThrottle


def test_leading_call_runs_immediately_and_trailing_collapses(scheduler) -> None:
    calls = []
    throttle = FlushThrottle(lambda: calls.append(scheduler.now()), scheduler, window=0.2)

    throttle()
    assert calls == [0.0]

    scheduler.advance(0.05)
    throttle()
    scheduler.advance(0.05)
    throttle()
    assert calls == [0.0]
    assert throttle.pending is True

    scheduler.advance(0.1)
    assert calls == [0.0, 0.2]
    assert throttle.pending is False

    scheduler.advance(1.0)
    assert calls == [0.0, 0.2]


def test_quiet_period_reopens_the_leading_edge(scheduler) -> None:
    calls = []
    throttle = FlushThrottle(lambda: calls.append(scheduler.now()), scheduler, window=0.2)
    throttle()
    scheduler.advance(0.5)
    throttle()
    assert calls == [0.0, 0.5]


def test_shorter_window_pulls_the_deadline_forward(scheduler) -> None:
    calls = []
    throttle = FlushThrottle(lambda: calls.append(scheduler.now()), scheduler, window=0.2)
    throttle()
    scheduler.advance(0.005)
    throttle(0.016)
    scheduler.advance(0.011)
    assert calls == pytest.approx([0.0, 0.016])


def test_zero_window_runs_every_call(scheduler) -> None:
    calls = []
    throttle = FlushThrottle(lambda: calls.append(1), scheduler, window=0.2)
    throttle(0)
    throttle(0)
    assert calls == [1, 1]
    assert scheduler.active == []


def test_flush_and_cancel(scheduler) -> None:
    calls = []
    throttle = FlushThrottle(lambda: calls.append(1), scheduler, window=0.2)
    throttle()
    throttle()
    throttle.flush()
    assert calls == [1, 1]
    assert throttle.pending is False

    scheduler.advance(1.0)
    throttle()
    throttle()
    throttle.cancel()
    scheduler.advance(1.0)
    assert calls == [1, 1, 1]


def test_asyncio_scheduler_drives_the_throttle() -> None:
    async def main():
        calls = []
        throttle = FlushThrottle(lambda: calls.append(1), AsyncioScheduler(), window=0.01)
        throttle()
        throttle()
        assert calls == [1]
        await asyncio.sleep(0.05)
        return calls

    assert asyncio.run(main()) == [1, 1]
