"""Scan scheduling: when the next run happens, and the loop that waits for it.

`next_scan_time` is a pure function of the current time and the persisted
settings. `Scheduler` is a single asyncio task that computes the next instant,
waits for it (or for a wake-up/stop), runs one scan, and repeats. Only one
wait is ever outstanding.
"""

import asyncio
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from medialib.core.config import settings
from medialib.core.settings_store import ScanSettings, UpdatePeriod


class SchedulerState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


def _next_day(current: date) -> date:
    return current + timedelta(days=1)


def _next_monday(current: date) -> date:
    # Strictly after `current`: a Monday maps to the following Monday
    return current + timedelta(days=7 - current.weekday())


def _next_first_of_month(current: date) -> date:
    if current.month == 12:
        return date(current.year + 1, 1, 1)
    return date(current.year, current.month + 1, 1)


def next_scan_time(now: datetime, scan_settings: ScanSettings) -> Optional[datetime]:
    """Compute the next scan instant, or None when nothing is scheduled.

    A pending manual request means "now". Otherwise the period decides the
    day and the configured start time the time of day; today counts only if
    it qualifies and the start time has not passed yet.
    """
    if scan_settings.manual_scan_requested:
        return now

    start_time = scan_settings.update_start_time
    before_start = now.time() < start_time
    today = now.date()
    period = UpdatePeriod.parse(scan_settings.update_period)

    if period is UpdatePeriod.DAILY:
        next_date = today if before_start else _next_day(today)
    elif period is UpdatePeriod.WEEKLY:
        if before_start and today.weekday() == 0:
            next_date = today
        else:
            next_date = _next_monday(today)
    elif period is UpdatePeriod.MONTHLY:
        if before_start and today.day == 1:
            next_date = today
        else:
            next_date = _next_first_of_month(today)
    else:
        return None

    return datetime.combine(next_date, start_time, tzinfo=now.tzinfo)


class Scheduler:
    """Cooperative scan loop: Idle -> Waiting(next instant) -> Running -> Idle.

    Attributes:
        state: Current `SchedulerState`.
        next_run_at: Instant of the pending wait, if any.
        error: Run-level exception that stopped the loop in FAILED.
    """

    def __init__(
        self,
        load_settings: Callable[[], Awaitable[ScanSettings]],
        run: Callable[[], Awaitable[Any]],
        idle_poll_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._load_settings = load_settings
        self._run = run
        self._idle_poll_seconds = (
            idle_poll_seconds
            if idle_poll_seconds is not None
            else settings.UPDATER_IDLE_POLL_SECONDS
        )
        self._clock = clock
        self._wake = asyncio.Event()
        self._stopping = False
        self._task: Optional[asyncio.Task] = None

        self.state = SchedulerState.IDLE
        self.next_run_at: Optional[datetime] = None
        self.error: Optional[BaseException] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stopping = False
        self._wake.clear()
        self.error = None
        self.state = SchedulerState.IDLE
        self._task = asyncio.create_task(self._loop(), name="medialib-scheduler")

    def wake(self) -> None:
        """Re-evaluate the schedule now (settings changed or manual request)."""
        self._wake.set()

    async def stop(self) -> None:
        """Cancel the pending wait and halt the loop.

        A run in progress is left to observe the stop request at its next file
        or root boundary. Safe to call when the loop never started.
        """
        self._stopping = True
        self._wake.set()
        if self._task is not None and self._task is not asyncio.current_task():
            await asyncio.gather(self._task, return_exceptions=True)
            if self.state is not SchedulerState.FAILED:
                self.state = SchedulerState.STOPPED
        self.next_run_at = None

    async def wait(self) -> None:
        """Wait for the loop to exit; re-raise the run-level failure if any."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        if self.error is not None:
            raise self.error

    async def _sleep(self, timeout: float) -> bool:
        """Wait up to `timeout` seconds; True if woken before it elapsed."""
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        self._wake.clear()
        return True

    async def _loop(self) -> None:
        announced: Optional[datetime] = None
        # The armed instant survives polls; only a wake-up, a settings change
        # or a run re-arms it
        armed: Optional[datetime] = None
        armed_for: Optional[ScanSettings] = None
        try:
            while not self._stopping:
                self.state = SchedulerState.IDLE
                scan_settings = await self._load_settings()
                now = self._clock()
                if armed_for is None or scan_settings != armed_for:
                    armed = next_scan_time(now, scan_settings)
                    armed_for = scan_settings
                next_at = armed

                if next_at is None:
                    self.next_run_at = None
                    logger.debug("No scan scheduled, waiting for a settings change")
                    if await self._sleep(self._idle_poll_seconds):
                        armed_for = None
                    continue

                delay = max(0.0, (next_at - now).total_seconds())
                if next_at != announced:
                    if scan_settings.manual_scan_requested:
                        logger.info("Manual scan requested!")
                    logger.info(f"Scheduling next scan at {next_at:%Y-%m-%d %H:%M:%S}")
                    announced = next_at
                self.state = SchedulerState.WAITING
                self.next_run_at = next_at
                # Long waits are cut into polls so requests from other processes are seen
                timeout = min(delay, self._idle_poll_seconds)
                if await self._sleep(timeout):
                    armed_for = None
                    continue
                if self._stopping or timeout < delay:
                    continue

                self.state = SchedulerState.RUNNING
                self.next_run_at = None
                announced = None
                armed_for = None
                await self._run()
        except Exception as e:
            self.state = SchedulerState.FAILED
            self.error = e
            logger.opt(exception=e).error("Scan loop failed, no further scans scheduled")
        finally:
            if self.state is not SchedulerState.FAILED:
                self.state = SchedulerState.STOPPED
