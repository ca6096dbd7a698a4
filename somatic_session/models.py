"""
Shared data models for the somatic session controller.

This module defines the core domain models used across multiple layers
of the application (controller, HTTP API, CLI).
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MoodId(str, Enum):
    """Body states a user can check in with."""

    HEAVY = "heavy"
    ANXIOUS = "anxious"
    CHAOTIC = "chaotic"


class VisualVariant(str, Enum):
    SHAKE = "shake"
    HUM = "hum"
    ROCK = "rock"


class Screen(str, Enum):
    """Top-level screens. Exactly one is active at any time."""

    CHECK_IN = "check-in"
    PLAYER = "player"
    AFTERGLOW = "afterglow"


class AfterglowPhase(str, Enum):
    """Closing phases, in the order they are shown."""

    INTRO = "intro"
    PROMPT = "prompt"
    AFFIRMATION = "affirmation"


AFTERGLOW_PHASES: tuple[AfterglowPhase, ...] = tuple(AfterglowPhase)


class MoodStyle(BaseModel):
    """Display and visual metadata for a mood."""

    model_config = ConfigDict(frozen=True)

    id: MoodId = Field(..., description="Mood identifier")
    label: str = Field(..., description="Check-in card label")
    name: str = Field(..., description="Session name shown on the player")
    description: str = Field(..., description="Short session description")
    color: str = Field(..., description="Primary color (hex)")
    secondary_color: str = Field(..., description="Secondary color (hex)")
    variant: VisualVariant = Field(..., description="Visualization variant")


class PlayerSessionState(BaseModel):
    """Mutable player state, owned by the controller while on the player."""

    model_config = ConfigDict(validate_assignment=True)

    mood: MoodId = Field(..., description="Mood fixed for this session")
    is_playing: bool = Field(False, description="Whether the session is running")
    intensity_percent: int = Field(50, ge=0, le=100, description="User intensity")
    elapsed_seconds: int = Field(0, ge=0, description="Seconds played so far")


class VisualizerFrame(BaseModel):
    """Everything the visualizer needs to render one mood session."""

    is_playing: bool
    intensity: float = Field(..., description="Drive factor, intensity_percent / 100")
    style: MoodStyle


class SessionSnapshot(BaseModel):
    """Point-in-time view of the controller, emitted after every change."""

    revision: int = Field(..., description="Monotonic change counter")
    screen: Screen
    mood: MoodId | None = None
    player: PlayerSessionState | None = None
    afterglow_phase: AfterglowPhase | None = None
    completion_pending: bool = Field(
        False, description="Session finished, waiting out the grace delay"
    )
    visualizer: VisualizerFrame | None = None
    timestamp: float = Field(..., description="Unix timestamp of the change")
