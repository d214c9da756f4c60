"""
Fiddler Receiver - Poll Scheduler.

============================================================
RESPONSIBILITY
============================================================
Drives poll cycles on a fixed interval.

- First cycle fires immediately, then every interval
- Tracks the advancing time window across cycles
- Bounds every cycle with a timeout
- Reports cycle errors to the host callback

============================================================
STATE MACHINE
============================================================
IDLE -> STARTING -> RUNNING -> STOPPING -> STOPPED

============================================================
WINDOW BOOKKEEPING
============================================================
window = (watermark, now - offset)

- start >= end: cycle skipped, watermark unchanged
- cycle completed: watermark = window.end
- cycle failed or timed out: watermark unchanged, the next
  cycle re-requests the same start

Initial watermark: now - offset - interval.

============================================================
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from fiddler_receiver.exceptions import CycleTimeoutError, ReceiverError
from fiddler_receiver.types import CycleResult, CycleStatus, TimeWindow


logger = logging.getLogger(__name__)


CycleFn = Callable[[TimeWindow], Awaitable[CycleResult]]
ErrorCallback = Callable[[ReceiverError], None]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerState(str, Enum):
    """Lifecycle states of the poll scheduler."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class PollScheduler:
    """
    Runs one cycle at a time on a fixed interval.

    Cycles never overlap: the next cycle is only considered after
    the previous one completed or timed out. Ticks missed while a
    cycle overran are dropped, not queued.
    """

    def __init__(
        self,
        cycle_fn: CycleFn,
        interval_seconds: float,
        offset_seconds: float,
        timeout_seconds: float,
        clock: Clock = utc_now,
        error_callback: Optional[ErrorCallback] = None,
    ) -> None:
        self._cycle_fn = cycle_fn
        self._interval = timedelta(seconds=interval_seconds)
        self._offset = timedelta(seconds=offset_seconds)
        self._timeout = timeout_seconds
        self._clock = clock
        self._error_callback = error_callback

        self._state = SchedulerState.IDLE
        self._watermark: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

        # Counters
        self._run_count = 0
        self._skipped_count = 0
        self._failed_count = 0
        self._last_result: Optional[CycleResult] = None

    # =========================================================
    # PROPERTIES
    # =========================================================

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def watermark(self) -> Optional[datetime]:
        """End of the last completed window."""
        return self._watermark

    @property
    def last_result(self) -> Optional[CycleResult]:
        return self._last_result

    # =========================================================
    # WINDOW
    # =========================================================

    def initial_watermark(self, now: datetime) -> datetime:
        return now - self._offset - self._interval

    def reset_watermark(self, now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        self._watermark = self.initial_watermark(now)

    def next_window(self, now: datetime) -> TimeWindow:
        """Window for a cycle starting at ``now``."""
        if self._watermark is None:
            self._watermark = self.initial_watermark(now)
        return TimeWindow(start=self._watermark, end=now - self._offset)

    # =========================================================
    # CYCLE
    # =========================================================

    async def run_cycle(self) -> CycleResult:
        """
        Run a single cycle under the timeout.

        Never raises for cycle errors; they are reported to the
        error callback and reflected in the returned result.
        """
        now = self._clock()
        window = self.next_window(now)

        if not window.is_valid():
            self._skipped_count += 1
            logger.info(
                f"Skipping cycle: empty window {window.start.isoformat()} -> {window.end.isoformat()}"
            )
            result = CycleResult(window=window, status=CycleStatus.SKIPPED, started_at=now)
            result.mark_complete(self._clock())
            self._last_result = result
            return result

        self._run_count += 1
        try:
            result = await asyncio.wait_for(self._cycle_fn(window), timeout=self._timeout)
        except asyncio.TimeoutError:
            error = CycleTimeoutError(
                f"Cycle exceeded timeout of {self._timeout}s",
                timeout_seconds=self._timeout,
                context={"window": window.to_dict()},
            )
            result = self._failed_result(window, now, error)
        except ReceiverError as e:
            result = self._failed_result(window, now, e)
        except Exception as e:
            logger.error(f"Unexpected cycle error: {e}", exc_info=True)
            error = ReceiverError(f"Unexpected cycle error: {e}", original_error=e)
            result = self._failed_result(window, now, error)

        if result.status in (CycleStatus.SUCCESS, CycleStatus.PARTIAL):
            self._watermark = window.end
        else:
            self._failed_count += 1

        self._last_result = result
        return result

    def _failed_result(
        self,
        window: TimeWindow,
        started_at: datetime,
        error: ReceiverError,
    ) -> CycleResult:
        self._report(error)
        result = CycleResult(window=window, started_at=started_at)
        result.mark_failed(str(error))
        result.mark_complete(self._clock())
        return result

    def _report(self, error: ReceiverError) -> None:
        logger.error(f"Cycle failed: {error}")
        if self._error_callback is None:
            return
        try:
            self._error_callback(error)
        except Exception:
            logger.exception("Error callback raised")

    # =========================================================
    # LIFECYCLE
    # =========================================================

    async def start(self) -> None:
        """Start the polling loop; the first cycle fires immediately."""
        if self._state not in (SchedulerState.IDLE, SchedulerState.STOPPED):
            logger.warning(f"Scheduler already {self._state.value}")
            return

        self._state = SchedulerState.STARTING
        self._stop_event = asyncio.Event()
        if self._watermark is None:
            self.reset_watermark()

        self._task = asyncio.create_task(self._run_loop())
        self._state = SchedulerState.RUNNING
        logger.info(
            f"Poll scheduler started (interval={self._interval.total_seconds():.0f}s, "
            f"offset={self._offset.total_seconds():.0f}s, timeout={self._timeout}s)"
        )

    async def stop(self) -> None:
        """Stop the loop, cancelling any in-flight cycle."""
        if self._state != SchedulerState.RUNNING:
            return

        self._state = SchedulerState.STOPPING
        if self._stop_event:
            self._stop_event.set()

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None
        self._state = SchedulerState.STOPPED
        logger.info("Poll scheduler stopped")

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self._interval.total_seconds()
        next_fire = loop.time()

        while self._state == SchedulerState.RUNNING or self._state == SchedulerState.STARTING:
            await self.run_cycle()

            next_fire += interval
            now = loop.time()
            while next_fire <= now:
                next_fire += interval

            if await self._wait_for_stop(next_fire - now):
                break

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep until the next tick; True if stop was requested."""
        assert self._stop_event is not None
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    # =========================================================
    # HEALTH
    # =========================================================

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "run_count": self._run_count,
            "skipped_count": self._skipped_count,
            "failed_count": self._failed_count,
            "watermark": self._watermark.isoformat() if self._watermark else None,
            "last_result": self._last_result.to_dict() if self._last_result else None,
        }
