"""
Error types for the somatic session controller.

None of these reach the user in normal operation: the controller logs them
and stays on its current screen.
"""


class SessionError(Exception):
    """Base class for session controller errors."""


class UnknownMoodError(SessionError):
    """A mood identifier outside the catalog was selected."""

    def __init__(self, mood_id: object) -> None:
        super().__init__(f"Unknown mood: {mood_id!r}")
        self.mood_id = mood_id


class StaleTimerEvent(SessionError):
    """A timer callback arrived after its owner was disarmed or left."""

    def __init__(self, source: str, generation: int, current: int) -> None:
        super().__init__(
            f"Stale {source} callback (generation {generation}, current {current})"
        )
        self.source = source
        self.generation = generation
        self.current = current
