"""
Clock and periodic task scheduling.

All timestamps in the optimization layer come from an injected ``Clock`` and
all periodic work is registered on an injected ``Scheduler``. Production
code uses ``SystemClock`` with ``AsyncioScheduler``; tests use
``ManualClock`` with ``ManualScheduler`` and advance virtual time.

A failing tick never stops its task: the error is logged with the task name
and tick id and the next tick runs on schedule.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Union

import structlog

from .exceptions import SchedulerError
from .logging import bind_tick_context, clear_tick_context, get_performance_logger

logger = structlog.get_logger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in local time."""

    def now(self) -> datetime:
        return datetime.now()


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, 0, 0, 0)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: Union[float, timedelta]) -> datetime:
        """Move the clock forward by seconds or a timedelta."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        if delta < timedelta(0):
            raise SchedulerError("Cannot move a clock backwards")
        self._now += delta
        return self._now

    def set(self, moment: datetime) -> None:
        if moment < self._now:
            raise SchedulerError("Cannot move a clock backwards")
        self._now = moment


class IntervalTask:
    """A named callback that runs every ``interval`` seconds."""

    def __init__(self, name: str, interval: float, callback: TickCallback):
        if interval <= 0:
            raise SchedulerError(f"Interval for '{name}' must be positive")
        self.name = name
        self.interval = interval
        self.callback = callback
        self.ticks = 0
        self.failures = 0
        self.cancelled = False
        self.next_due: Optional[datetime] = None
        self._handle: Optional[asyncio.Task] = None
        self._on_cancel: Optional[Callable[["IntervalTask"], None]] = None
        self._perf = get_performance_logger(__name__)

    async def run_once(self) -> bool:
        """Run one tick, logging instead of raising on failure."""
        tick_id = bind_tick_context(self.name)
        start = time.perf_counter()
        self.ticks += 1
        try:
            await self.callback()
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.error("Periodic task tick failed",
                         task=self.name,
                         tick_id=tick_id,
                         error=str(e),
                         exc_info=True)
            return False
        finally:
            self._perf.log_tick(self.name, (time.perf_counter() - start) * 1000)
            clear_tick_context()

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._handle is not None and not self._handle.done():
            self._handle.cancel()
        if self._on_cancel is not None:
            self._on_cancel(self)


class Scheduler(Protocol):
    """Registers periodic tasks."""

    clock: Clock

    def every(self, name: str, interval: float, callback: TickCallback) -> IntervalTask:
        ...

    def cancel_all(self) -> None:
        ...


class AsyncioScheduler:
    """Runs each interval task as its own asyncio task."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._tasks: List[IntervalTask] = []

    def every(self, name: str, interval: float, callback: TickCallback) -> IntervalTask:
        task = IntervalTask(name, interval, callback)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise SchedulerError(f"Cannot schedule '{name}' without a running event loop") from e

        task._handle = loop.create_task(self._run(task), name=f"fleet:{name}")
        task._on_cancel = self._tasks.remove
        self._tasks.append(task)
        logger.info("Periodic task scheduled", task=name, interval=interval)
        return task

    async def _run(self, task: IntervalTask) -> None:
        while not task.cancelled:
            try:
                await asyncio.sleep(task.interval)
            except asyncio.CancelledError:
                break
            if task.cancelled:
                break
            await task.run_once()

    def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info("Periodic tasks cancelled", count=len(tasks))

    @property
    def tasks(self) -> List[IntervalTask]:
        return list(self._tasks)


class ManualScheduler:
    """Virtual-time scheduler driven explicitly by ``advance``."""

    def __init__(self, clock: Optional[ManualClock] = None):
        self.clock = clock or ManualClock()
        self._tasks: Dict[int, IntervalTask] = {}

    def every(self, name: str, interval: float, callback: TickCallback) -> IntervalTask:
        task = IntervalTask(name, interval, callback)
        task.next_due = self.clock.now() + timedelta(seconds=interval)
        self._tasks[id(task)] = task
        task._on_cancel = self._forget
        logger.debug("Periodic task scheduled", task=name, interval=interval)
        return task

    async def advance(self, seconds: float) -> int:
        """
        Move virtual time forward, firing every tick that falls due.

        Returns the number of ticks run.
        """
        target = self.clock.now() + timedelta(seconds=seconds)
        fired = 0
        while True:
            due = [t for t in self._tasks.values()
                   if not t.cancelled and t.next_due is not None and t.next_due <= target]
            if not due:
                break
            task = min(due, key=lambda t: t.next_due)
            self.clock.set(task.next_due)
            task.next_due = task.next_due + timedelta(seconds=task.interval)
            await task.run_once()
            fired += 1
        self.clock.set(target)
        return fired

    def _forget(self, task: IntervalTask) -> None:
        self._tasks.pop(id(task), None)

    def cancel_all(self) -> None:
        for task in list(self._tasks.values()):
            task.cancel()

    @property
    def tasks(self) -> List[IntervalTask]:
        return list(self._tasks.values())
