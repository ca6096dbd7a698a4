"""
Tuning constants for the session flow.

The session duration has no default: callers must decide how long a session
runs (short for trying things out, longer for real use).
"""

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import AFTERGLOW_PHASES

ENV_SESSION_DURATION = "SESSION_DURATION_SECONDS"
ENV_PHASE_DURATIONS = "AFTERGLOW_PHASE_DURATIONS"
ENV_AUTO_DISMISS = "AFTERGLOW_AUTO_DISMISS_SECONDS"


class SessionConfig(BaseModel):
    """Validated session tuning values."""

    model_config = ConfigDict(frozen=True)

    session_duration_seconds: int = Field(
        ..., gt=0, description="Playable seconds before auto-completion"
    )
    tick_interval_seconds: float = Field(1.0, gt=0, description="Timer period")
    completion_grace_seconds: float = Field(
        1.0, ge=0, description="Delay between completion and the afterglow screen"
    )
    afterglow_phase_durations: tuple[float, ...] = Field(
        (2.0, 2.0), description="Dwell seconds of each non-terminal afterglow phase"
    )
    afterglow_auto_dismiss_seconds: float = Field(
        8.0, gt=0, description="Total afterglow lifetime before auto-dismiss"
    )
    default_intensity: int = Field(50, ge=0, le=100)
    debug: bool = Field(False, description="Raise on unknown moods instead of refusing")

    @field_validator("afterglow_phase_durations")
    @classmethod
    def _check_phase_durations(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        expected = len(AFTERGLOW_PHASES) - 1
        if len(value) != expected:
            raise ValueError(
                f"expected {expected} phase durations, got {len(value)}"
            )
        if any(d < 0 for d in value):
            raise ValueError("phase durations must be non-negative")
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "SessionConfig":
        """
        Build a config from environment variables.

        Recognized: SESSION_DURATION_SECONDS, AFTERGLOW_PHASE_DURATIONS
        (comma-separated seconds) and AFTERGLOW_AUTO_DISMISS_SECONDS.
        Keyword overrides win over the environment.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, object] = {}
        if ENV_SESSION_DURATION in environ:
            values["session_duration_seconds"] = environ[ENV_SESSION_DURATION]
        if ENV_PHASE_DURATIONS in environ:
            values["afterglow_phase_durations"] = parse_durations(
                environ[ENV_PHASE_DURATIONS]
            )
        if ENV_AUTO_DISMISS in environ:
            values["afterglow_auto_dismiss_seconds"] = environ[ENV_AUTO_DISMISS]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


def parse_durations(raw: str) -> tuple[float, ...]:
    """Parse "2,2" or "2.5, 3" into a tuple of seconds."""
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    try:
        return tuple(float(p) for p in parts)
    except ValueError:
        raise ValueError(f"Invalid duration list: {raw!r}") from None
