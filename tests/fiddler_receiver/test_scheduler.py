"""
Tests for the Poll Scheduler.

============================================================
PURPOSE
============================================================
- Initial window and window continuity
- Empty windows are skipped
- Watermark only advances on completed cycles
- Timeout and error reporting
- Start / stop lifecycle

============================================================
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fiddler_receiver.exceptions import CatalogFetchError, CycleTimeoutError, ReceiverError
from fiddler_receiver.scheduler import PollScheduler, SchedulerState
from fiddler_receiver.types import CycleResult, CycleStatus


HOUR = 3600
T0 = datetime(2021, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def windows():
    return []


@pytest.fixture
def scheduler(clock, windows):
    async def cycle_fn(window):
        windows.append(window)
        return CycleResult(window=window)

    return PollScheduler(
        cycle_fn=cycle_fn,
        interval_seconds=HOUR,
        offset_seconds=HOUR,
        timeout_seconds=5,
        clock=clock,
    )


# ============================================================
# WINDOWS
# ============================================================

class TestWindows:
    """Tests for window bookkeeping."""

    @pytest.mark.asyncio
    async def test_initial_window(self, scheduler, windows):
        await scheduler.run_cycle()

        assert windows[0].start == T0 - timedelta(hours=2)
        assert windows[0].end == T0 - timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_consecutive_windows_are_contiguous(self, scheduler, clock, windows):
        for _ in range(3):
            await scheduler.run_cycle()
            clock.advance(HOUR)

        assert windows[0].end == windows[1].start
        assert windows[1].end == windows[2].start
        assert scheduler.watermark == windows[2].end

    @pytest.mark.asyncio
    async def test_empty_window_skipped(self, scheduler, clock, windows):
        await scheduler.run_cycle()
        watermark = scheduler.watermark

        result = await scheduler.run_cycle()

        assert result.status == CycleStatus.SKIPPED
        assert len(windows) == 1
        assert scheduler.watermark == watermark

    @pytest.mark.asyncio
    async def test_clock_going_backwards_skips(self, scheduler, clock, windows):
        await scheduler.run_cycle()
        clock.advance(-60)

        result = await scheduler.run_cycle()

        assert result.status == CycleStatus.SKIPPED
        assert len(windows) == 1

    def test_reset_watermark(self, scheduler):
        scheduler.reset_watermark(T0)

        assert scheduler.watermark == T0 - timedelta(hours=2)


# ============================================================
# FAILURES
# ============================================================

class TestFailures:
    """Tests for failed and timed-out cycles."""

    @pytest.mark.asyncio
    async def test_timeout_reports_and_keeps_watermark(self, clock):
        reported = []

        async def slow_cycle(window):
            await asyncio.sleep(10)
            return CycleResult(window=window)

        scheduler = PollScheduler(
            cycle_fn=slow_cycle,
            interval_seconds=HOUR,
            offset_seconds=HOUR,
            timeout_seconds=0.05,
            clock=clock,
            error_callback=reported.append,
        )
        scheduler.reset_watermark(T0)
        watermark = scheduler.watermark

        result = await scheduler.run_cycle()

        assert result.status == CycleStatus.FAILED
        assert len(reported) == 1
        assert isinstance(reported[0], CycleTimeoutError)
        assert scheduler.watermark == watermark

    @pytest.mark.asyncio
    async def test_failed_cycle_retries_same_start(self, clock):
        windows = []
        outcomes = [CycleStatus.FAILED, CycleStatus.SUCCESS]

        async def cycle_fn(window):
            windows.append(window)
            result = CycleResult(window=window)
            if outcomes.pop(0) == CycleStatus.FAILED:
                result.mark_failed("All query requests failed")
            return result

        scheduler = PollScheduler(cycle_fn, HOUR, HOUR, 5, clock=clock)

        await scheduler.run_cycle()
        clock.advance(HOUR)
        await scheduler.run_cycle()

        assert windows[1].start == windows[0].start
        assert scheduler.watermark == windows[1].end

    @pytest.mark.asyncio
    async def test_partial_cycle_advances(self, clock):
        async def cycle_fn(window):
            result = CycleResult(window=window)
            result.add_error("model2 failed")
            return result

        scheduler = PollScheduler(cycle_fn, HOUR, HOUR, 5, clock=clock)

        result = await scheduler.run_cycle()

        assert result.status == CycleStatus.PARTIAL
        assert scheduler.watermark == T0 - timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_receiver_error_reported(self, clock):
        reported = []

        async def cycle_fn(window):
            raise CatalogFetchError("Failed to list models")

        scheduler = PollScheduler(cycle_fn, HOUR, HOUR, 5, clock=clock, error_callback=reported.append)

        result = await scheduler.run_cycle()

        assert result.status == CycleStatus.FAILED
        assert isinstance(reported[0], CatalogFetchError)
        assert scheduler.get_health_status()["failed_count"] == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, clock):
        reported = []

        async def cycle_fn(window):
            raise RuntimeError("boom")

        scheduler = PollScheduler(cycle_fn, HOUR, HOUR, 5, clock=clock, error_callback=reported.append)

        result = await scheduler.run_cycle()

        assert result.status == CycleStatus.FAILED
        assert isinstance(reported[0], ReceiverError)
        assert isinstance(reported[0].original_error, RuntimeError)

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_escape(self, clock):
        def callback(error):
            raise ValueError("callback bug")

        async def cycle_fn(window):
            raise CatalogFetchError("Failed to list models")

        scheduler = PollScheduler(cycle_fn, HOUR, HOUR, 5, clock=clock, error_callback=callback)

        result = await scheduler.run_cycle()

        assert result.status == CycleStatus.FAILED


# ============================================================
# LIFECYCLE
# ============================================================

class TestLifecycle:
    """Tests for start() / stop()."""

    @pytest.mark.asyncio
    async def test_first_cycle_runs_immediately(self, clock):
        fired = asyncio.Event()

        async def cycle_fn(window):
            fired.set()
            return CycleResult(window=window)

        scheduler = PollScheduler(cycle_fn, HOUR, HOUR, 5, clock=clock)

        await scheduler.start()
        assert scheduler.state == SchedulerState.RUNNING

        await asyncio.wait_for(fired.wait(), timeout=1.0)
        await scheduler.stop()

        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.get_health_status()["run_count"] == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_inflight_cycle(self, clock):
        started = asyncio.Event()

        async def cycle_fn(window):
            started.set()
            await asyncio.sleep(10)
            return CycleResult(window=window)

        scheduler = PollScheduler(cycle_fn, HOUR, HOUR, 30, clock=clock)

        await scheduler.start()
        await asyncio.wait_for(started.wait(), timeout=1.0)
        await asyncio.wait_for(scheduler.stop(), timeout=1.0)

        assert scheduler.state == SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self, scheduler):
        await scheduler.stop()

        assert scheduler.state == SchedulerState.IDLE
