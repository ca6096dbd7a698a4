"""
Afterglow sequencer: the closing phases shown after a session.

All callbacks (phase advances and auto-dismiss) are registered together on
start() and cancelled together on the first dismissal, whichever path it
takes.
"""

import logging
from collections.abc import Callable, Sequence
from itertools import accumulate

from .errors import StaleTimerEvent
from .models import AFTERGLOW_PHASES, AfterglowPhase
from .scheduler import Cancellable, Scheduler

logger = logging.getLogger(__name__)

DISMISS_AUTO = "auto"
DISMISS_TAP = "tap"


class AfterglowSequencer:
    """Runs intro -> prompt -> affirmation, then dismisses."""

    def __init__(
        self,
        scheduler: Scheduler,
        phase_durations: Sequence[float] = (2.0, 2.0),
        auto_dismiss_seconds: float = 8.0,
        on_phase: Callable[[AfterglowPhase], None] | None = None,
        on_dismiss: Callable[[str], None] | None = None,
    ) -> None:
        if len(phase_durations) != len(AFTERGLOW_PHASES) - 1:
            raise ValueError(
                f"expected {len(AFTERGLOW_PHASES) - 1} phase durations, "
                f"got {len(phase_durations)}"
            )
        self._scheduler = scheduler
        self._phase_durations = tuple(phase_durations)
        self._auto_dismiss_seconds = auto_dismiss_seconds
        self._on_phase = on_phase
        self._on_dismiss = on_dismiss
        self._handles: list[Cancellable] = []
        self._generation = 0
        self._active = False
        self._phase: AfterglowPhase | None = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def phase(self) -> AfterglowPhase | None:
        return self._phase

    def start(self) -> None:
        """Enter the intro phase and register every phase and dismiss callback."""
        self.cancel()
        self._generation += 1
        self._active = True
        self._phase = AFTERGLOW_PHASES[0]
        generation = self._generation

        offsets = accumulate(self._phase_durations)
        for index, offset in enumerate(offsets, start=1):
            self._handles.append(
                self._scheduler.call_later(
                    offset, self._guarded(generation, self._advance, index)
                )
            )
        self._handles.append(
            self._scheduler.call_later(
                self._auto_dismiss_seconds,
                self._guarded(generation, self._dismiss, DISMISS_AUTO),
            )
        )
        logger.info("Afterglow started")
        self._notify_phase()

    def tap(self) -> bool:
        """User dismissal. Returns False if the sequence is not running."""
        if not self._active:
            logger.debug("Tap ignored, afterglow not active")
            return False
        self._dismiss(DISMISS_TAP)
        return True

    def cancel(self) -> None:
        """Cancel every pending callback without dismissing."""
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        if self._active:
            self._active = False
            self._generation += 1

    def _guarded(self, generation: int, action: Callable, arg) -> Callable[[], None]:
        def callback() -> None:
            try:
                if not self._active or generation != self._generation:
                    raise StaleTimerEvent("afterglow", generation, self._generation)
                action(arg)
            except StaleTimerEvent as e:
                logger.debug("Discarded: %s", e)

        return callback

    def _advance(self, index: int) -> None:
        current = AFTERGLOW_PHASES.index(self._phase) if self._phase else -1
        if index <= current:
            logger.debug("Phase %s already passed", AFTERGLOW_PHASES[index].value)
            return
        self._phase = AFTERGLOW_PHASES[index]
        logger.info("Afterglow phase -> %s", self._phase.value)
        self._notify_phase()

    def _dismiss(self, reason: str) -> None:
        self.cancel()
        logger.info("Afterglow dismissed (%s)", reason)
        if self._on_dismiss is not None:
            self._on_dismiss(reason)

    def _notify_phase(self) -> None:
        if self._on_phase is not None and self._phase is not None:
            self._on_phase(self._phase)
