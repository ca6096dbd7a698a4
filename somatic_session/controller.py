"""
Session flow controller.

This module owns the screen state machine (check-in -> player -> afterglow
-> check-in), the player's play/pause/intensity/elapsed state and the
lifecycles of the session timer and the afterglow sequencer. UI bindings
call the on_* methods and read snapshots; nothing else mutates the state.
"""

import logging
import math
import time
from collections.abc import Callable

from .afterglow import AfterglowSequencer
from .catalog import MOOD_CATALOG, lookup
from .config import SessionConfig
from .errors import StaleTimerEvent, UnknownMoodError
from .models import (
    AfterglowPhase,
    MoodId,
    MoodStyle,
    PlayerSessionState,
    Screen,
    SessionSnapshot,
    VisualizerFrame,
)
from .scheduler import Cancellable, LoopScheduler, Scheduler
from .timer import SessionTimer

logger = logging.getLogger(__name__)

Listener = Callable[[SessionSnapshot], None]


class SessionFlowController:
    """
    Screen-level state machine for one somatic session at a time.

    Leaving a screen always cancels that screen's timers before any other
    state changes, and every timer-driven callback re-checks the screen and
    the session generation it was scheduled for, so a late callback from an
    old session can never mutate a newer one.
    """

    def __init__(
        self,
        config: SessionConfig,
        scheduler: Scheduler | None = None,
        catalog: dict[MoodId, MoodStyle] | None = None,
    ) -> None:
        self._config = config
        self._scheduler = scheduler if scheduler is not None else LoopScheduler()
        self._catalog = MOOD_CATALOG if catalog is None else catalog

        self._screen = Screen.CHECK_IN
        self._player: PlayerSessionState | None = None
        self._style: MoodStyle | None = None
        self._session_generation = 0
        self._completion_pending = False
        self._grace_handle: Cancellable | None = None
        self._revision = 0
        self._listeners: list[Listener] = []

        self._timer = SessionTimer(
            self._scheduler,
            config.session_duration_seconds,
            on_tick=self._on_timer_tick,
            on_completed=self._on_timer_completed,
            interval=config.tick_interval_seconds,
        )
        self._afterglow = AfterglowSequencer(
            self._scheduler,
            phase_durations=config.afterglow_phase_durations,
            auto_dismiss_seconds=config.afterglow_auto_dismiss_seconds,
            on_phase=self._on_afterglow_phase,
            on_dismiss=self._on_afterglow_dismiss,
        )

    # MARK: - State

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def catalog(self) -> dict[MoodId, MoodStyle]:
        return self._catalog

    @property
    def screen(self) -> Screen:
        return self._screen

    @property
    def mood(self) -> MoodId | None:
        return self._player.mood if self._player is not None else None

    @property
    def player(self) -> PlayerSessionState | None:
        """A copy of the player state, or None outside a session."""
        return self._player.model_copy() if self._player is not None else None

    @property
    def afterglow_phase(self) -> AfterglowPhase | None:
        if self._screen is not Screen.AFTERGLOW:
            return None
        return self._afterglow.phase

    @property
    def completion_pending(self) -> bool:
        return self._completion_pending

    @property
    def timer(self) -> SessionTimer:
        return self._timer

    def visualizer_frame(self) -> VisualizerFrame | None:
        """
        Build what the visualizer consumes for the current session.

        Intensity is handed over as the drive factor intensity_percent / 100;
        scaling the motion with it is up to the visualizer.
        """
        if self._screen is not Screen.PLAYER or self._player is None:
            return None
        return VisualizerFrame(
            is_playing=self._player.is_playing,
            intensity=self._player.intensity_percent / 100,
            style=self._style,
        )

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            revision=self._revision,
            screen=self._screen,
            mood=self.mood,
            player=self.player,
            afterglow_phase=self.afterglow_phase,
            completion_pending=self._completion_pending,
            visualizer=self.visualizer_frame(),
            timestamp=time.time(),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for snapshots.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # MARK: - UI events

    def on_mood_select(self, mood_id: MoodId | str) -> bool:
        """Check-in selection. Starts a fresh, paused player session."""
        if self._screen is not Screen.CHECK_IN:
            return self._refuse("mood selection")

        try:
            style = lookup(mood_id, self._catalog)
        except UnknownMoodError as e:
            logger.error("Mood selection refused: %s", e)
            if self._config.debug:
                raise
            return False

        self._timer.reset()
        self._session_generation += 1
        self._completion_pending = False
        self._style = style
        self._player = PlayerSessionState(
            mood=style.id, intensity_percent=self._config.default_intensity
        )
        self._screen = Screen.PLAYER
        logger.info("Session %d started: %s", self._session_generation, style.id.value)
        self._publish()
        return True

    def toggle_play(self) -> bool:
        """Flip play/pause, arming or disarming the session timer."""
        if self._screen is not Screen.PLAYER or self._player is None:
            return self._refuse("play toggle")
        if self._completion_pending:
            return self._refuse("play toggle after completion")

        if self._player.is_playing:
            self._timer.stop()
            self._player.is_playing = False
        else:
            self._player.is_playing = True
            self._timer.start()
            if not self._timer.armed:
                self._player.is_playing = False
                return self._refuse("play toggle on a finished session")

        logger.info(
            "Session %s at %ds",
            "playing" if self._player.is_playing else "paused",
            self._player.elapsed_seconds,
        )
        self._publish()
        return True

    def set_intensity(self, value: float) -> int | None:
        """
        Set the intensity, clamped to 0..100.

        Returns:
            The stored intensity, or None if no session is running or the
            value is NaN
        """
        if self._screen is not Screen.PLAYER or self._player is None:
            self._refuse("intensity change")
            return None

        if math.isnan(value):
            logger.warning("Ignoring intensity change to NaN")
            return None

        intensity = int(round(min(100.0, max(0.0, value))))
        self._player.intensity_percent = intensity
        logger.debug("Intensity set to %d", intensity)
        self._publish()
        return intensity

    def skip(self) -> bool:
        """Leave the player right away, as if the session had completed."""
        if self._screen is not Screen.PLAYER:
            return self._refuse("skip")
        logger.info("Session skipped at %ds", self._timer.elapsed)
        return self.on_complete()

    def on_complete(self) -> bool:
        """Transition from the player to the afterglow."""
        if self._screen is not Screen.PLAYER:
            return self._refuse("completion")

        self._leave_player()
        self._screen = Screen.AFTERGLOW
        # the sequencer publishes the intro phase
        self._afterglow.start()
        return True

    def tap(self) -> bool:
        """User tap on the afterglow screen."""
        if self._screen is not Screen.AFTERGLOW:
            return self._refuse("tap")
        return self._afterglow.tap()

    def on_dismiss(self) -> bool:
        """Return from the afterglow to check-in."""
        if self._screen is not Screen.AFTERGLOW:
            return self._refuse("dismiss")
        self._afterglow.cancel()
        self._return_to_check_in()
        return True

    def close(self) -> None:
        """Cancel every pending callback. The controller stays on its screen."""
        self._timer.stop()
        self._cancel_grace()
        self._afterglow.cancel()

    # MARK: - Timer callbacks

    def _on_timer_tick(self, elapsed: int) -> None:
        if self._screen is not Screen.PLAYER or self._player is None:
            raise StaleTimerEvent("session tick", self._session_generation, -1)
        self._player.elapsed_seconds = elapsed
        self._publish()

    def _on_timer_completed(self) -> None:
        if self._screen is not Screen.PLAYER or self._player is None:
            raise StaleTimerEvent("session completion", self._session_generation, -1)

        self._player.is_playing = False
        self._completion_pending = True
        generation = self._session_generation
        self._grace_handle = self._scheduler.call_later(
            self._config.completion_grace_seconds,
            lambda: self._on_grace_elapsed(generation),
        )
        logger.info(
            "Session complete after %ds, afterglow in %.1fs",
            self._player.elapsed_seconds,
            self._config.completion_grace_seconds,
        )
        self._publish()

    def _on_grace_elapsed(self, generation: int) -> None:
        try:
            if (
                self._screen is not Screen.PLAYER
                or generation != self._session_generation
                or not self._completion_pending
            ):
                raise StaleTimerEvent("completion grace", generation, self._session_generation)
            self._grace_handle = None
            self.on_complete()
        except StaleTimerEvent as e:
            logger.debug("Discarded: %s", e)

    def _on_afterglow_phase(self, phase: AfterglowPhase) -> None:
        if self._screen is not Screen.AFTERGLOW:
            logger.debug("Discarded afterglow phase %s off screen", phase.value)
            return
        self._publish()

    def _on_afterglow_dismiss(self, reason: str) -> None:
        if self._screen is not Screen.AFTERGLOW:
            logger.debug("Discarded afterglow dismissal (%s) off screen", reason)
            return
        self._return_to_check_in()

    # MARK: - Private Helpers

    def _leave_player(self) -> None:
        self._timer.stop()
        self._cancel_grace()
        self._completion_pending = False
        if self._player is not None:
            self._player.is_playing = False

    def _return_to_check_in(self) -> None:
        self._timer.reset()
        self._cancel_grace()
        self._completion_pending = False
        self._player = None
        self._style = None
        self._screen = Screen.CHECK_IN
        logger.info("Back to check-in")
        self._publish()

    def _cancel_grace(self) -> None:
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None

    def _refuse(self, action: str) -> bool:
        logger.warning("Ignoring %s on %s screen", action, self._screen.value)
        return False

    def _publish(self) -> None:
        self._revision += 1
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")
