"""Scheduling for the tick engine and delayed transitions.

Two implementations share one small surface (`every`, `later`, returning
a cancellable ScheduledTask):

- APSchedulerDriver: real wall-clock jobs on an APScheduler AsyncIOScheduler.
  Callbacks are wrapped as coroutines so they run on the event loop thread
  and never interleave with each other.
- ManualScheduler: a virtual clock for tests; advance() fires due callbacks
  synchronously, in due order.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("tempo_timer.scheduler")

Callback = Callable[[], None]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class ScheduledTask:
    """Cancellation token for one scheduled callback."""

    def __init__(self, name: str, on_cancel: Optional[Callable[[], None]] = None):
        self.name = name
        self._cancelled = False
        self._done = False
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._done)

    def finish(self) -> None:
        """Mark a one-shot task as fired."""
        self._done = True

    def cancel(self) -> None:
        if not self.active:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


class Scheduler:
    """Interface shared by the real and the manual scheduler."""

    def now_ms(self) -> int:
        raise NotImplementedError

    def every(self, seconds: float, callback: Callback, name: str = "interval") -> ScheduledTask:
        raise NotImplementedError

    def later(self, seconds: float, callback: Callback, name: str = "delay") -> ScheduledTask:
        raise NotImplementedError


class APSchedulerDriver(Scheduler):
    """Schedules callbacks as APScheduler jobs."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None, clock: Callable[[], int] = wall_clock_ms):
        self.scheduler = scheduler or AsyncIOScheduler()
        self._clock = clock

    def now_ms(self) -> int:
        return self._clock()

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def _remove(self, job_id: str) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            # one-shot jobs are gone once they have fired
            pass

    def _add(self, task: ScheduledTask, job_id: str, trigger, callback: Callback, one_shot: bool) -> None:
        async def _run():
            if not task.active:
                return
            if one_shot:
                task.finish()
            callback()

        self.scheduler.add_job(
            _run,
            trigger=trigger,
            id=job_id,
            name=task.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def every(self, seconds: float, callback: Callback, name: str = "interval") -> ScheduledTask:
        job_id = f"{name}_{uuid.uuid4().hex[:8]}"
        task = ScheduledTask(name, on_cancel=lambda: self._remove(job_id))
        self._add(task, job_id, IntervalTrigger(seconds=seconds), callback, one_shot=False)
        logger.debug(f"Scheduled {job_id} every {seconds}s")
        return task

    def later(self, seconds: float, callback: Callback, name: str = "delay") -> ScheduledTask:
        job_id = f"{name}_{uuid.uuid4().hex[:8]}"
        task = ScheduledTask(name, on_cancel=lambda: self._remove(job_id))
        run_date = datetime.now().astimezone() + timedelta(seconds=seconds)
        self._add(task, job_id, DateTrigger(run_date=run_date), callback, one_shot=True)
        logger.debug(f"Scheduled {job_id} in {seconds}s")
        return task


class ManualScheduler(Scheduler):
    """Deterministic scheduler driven by advance()."""

    def __init__(self, start_ms: int = 0):
        self._now_ms = start_ms
        self._queue: list[tuple[int, int, ScheduledTask, Callback, Optional[int]]] = []
        self._seq = itertools.count()

    def now_ms(self) -> int:
        return self._now_ms

    def _push(self, due_ms: int, task: ScheduledTask, callback: Callback, interval_ms: Optional[int]) -> None:
        heapq.heappush(self._queue, (due_ms, next(self._seq), task, callback, interval_ms))

    def every(self, seconds: float, callback: Callback, name: str = "interval") -> ScheduledTask:
        interval_ms = round(seconds * 1000)
        if interval_ms <= 0:
            raise ValueError("interval must be positive")
        task = ScheduledTask(name)
        self._push(self._now_ms + interval_ms, task, callback, interval_ms)
        return task

    def later(self, seconds: float, callback: Callback, name: str = "delay") -> ScheduledTask:
        task = ScheduledTask(name)
        self._push(self._now_ms + round(seconds * 1000), task, callback, None)
        return task

    @property
    def pending(self) -> list[ScheduledTask]:
        return [entry[2] for entry in self._queue if entry[2].active]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every callback that comes due."""
        self.advance_ms(round(seconds * 1000))

    def advance_ms(self, ms: int) -> None:
        target = self._now_ms + ms
        while self._queue and self._queue[0][0] <= target:
            due_ms, _, task, callback, interval_ms = heapq.heappop(self._queue)
            if not task.active:
                continue
            self._now_ms = due_ms
            if interval_ms is None:
                task.finish()
            else:
                self._push(due_ms + interval_ms, task, callback, interval_ms)
            callback()
        self._now_ms = target
