"""
Session timer: counts played seconds and signals completion once.
"""

import logging
from collections.abc import Callable

from .errors import StaleTimerEvent
from .scheduler import Cancellable, Scheduler

logger = logging.getLogger(__name__)


class SessionTimer:
    """
    One-second tick counter with a single completion signal per arm cycle.

    Each start() opens a new generation. A tick only counts if it carries
    the current generation and the timer is still armed, so a callback that
    outlives stop() can never touch the counter.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        duration_seconds: int,
        on_tick: Callable[[int], None] | None = None,
        on_completed: Callable[[], None] | None = None,
        interval: float = 1.0,
    ) -> None:
        self._scheduler = scheduler
        self._duration = duration_seconds
        self._interval = interval
        self._on_tick = on_tick
        self._on_completed = on_completed
        self._elapsed = 0
        self._generation = 0
        self._armed = False
        self._handle: Cancellable | None = None

    @property
    def elapsed(self) -> int:
        return self._elapsed

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def duration(self) -> int:
        return self._duration

    def start(self) -> None:
        """Arm the timer. Any previous tick source is stopped first."""
        if self._elapsed >= self._duration:
            logger.warning(
                "Refusing to start a finished timer (%d/%d)", self._elapsed, self._duration
            )
            return

        self.stop()
        self._generation += 1
        self._armed = True
        self._schedule_tick()
        logger.debug("Timer armed (generation %d, elapsed %d)", self._generation, self._elapsed)

    def stop(self) -> None:
        """Disarm the timer and cancel the pending tick. Safe when stopped."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._armed:
            self._armed = False
            self._generation += 1
            logger.debug("Timer stopped at %d", self._elapsed)

    def reset(self) -> None:
        self.stop()
        self._elapsed = 0

    def _schedule_tick(self) -> None:
        generation = self._generation
        self._handle = self._scheduler.call_later(
            self._interval, lambda: self._on_timer(generation)
        )

    def _on_timer(self, generation: int) -> None:
        try:
            self._tick(generation)
        except StaleTimerEvent as e:
            logger.debug("Discarded: %s", e)

    def _tick(self, generation: int) -> None:
        if not self._armed or generation != self._generation:
            raise StaleTimerEvent("tick", generation, self._generation)

        self._handle = None
        self._elapsed += 1
        logger.debug("Tick %d/%d", self._elapsed, self._duration)
        if self._on_tick is not None:
            self._on_tick(self._elapsed)

        # on_tick may have stopped or re-armed the timer
        if not self._armed or generation != self._generation:
            return

        if self._elapsed >= self._duration:
            self.stop()
            if self._on_completed is not None:
                self._on_completed()
            return

        self._schedule_tick()
