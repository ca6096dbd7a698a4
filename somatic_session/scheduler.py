"""
Cooperative scheduling for session timers.

Everything time-driven in the controller goes through a scheduler so the
same code runs on a live asyncio loop and on a virtual clock in tests.
"""

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Schedules one-shot callbacks after a delay."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...

    def now(self) -> float: ...


class LoopScheduler:
    """
    Scheduler backed by the running asyncio event loop.

    Callbacks run on the loop thread, one at a time, so no locking is needed
    around the state they mutate.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._get_loop().call_later(delay, callback)

    def now(self) -> float:
        return self._get_loop().time()


class ManualHandle:
    """Handle for a callback scheduled on a ManualScheduler."""

    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Virtual-clock scheduler.

    Time only moves when advance() is called; due callbacks then run in
    order of due time (ties in scheduling order), including callbacks that
    were scheduled by other callbacks during the same advance.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, ManualHandle]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self._now + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not been cancelled."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward and run every callback that falls due.

        Returns:
            How many callbacks ran
        """
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = when
            handle.callback()
            ran += 1
        self._now = target
        return ran
