"""Scene data model."""

import math
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# Scene durations are summed and compared at microsecond resolution.
DURATION_PRECISION = 6


class TransitionType(str, Enum):
    """Transition from a scene into the one that follows it."""
    FADE = "Fade"
    DISSOLVE = "Dissolve"
    SLIDE_LEFT = "Slide Left"
    SLIDE_RIGHT = "Slide Right"
    WIPE_UP = "Wipe Up"
    WIPE_DOWN = "Wipe Down"

    @property
    def implemented(self) -> bool:
        """Whether this label has its own visual; all others render as a fade."""
        return self is TransitionType.FADE


def new_scene_id() -> str:
    return uuid.uuid4().hex


class Scene(BaseModel):
    """Represents a single timed scene in the video."""

    id: str = Field(default_factory=new_scene_id, description="Unique scene identifier")
    description: str = Field(default="", description="Human-readable scene summary")
    image_prompt: str = Field(..., description="Image generation prompt")
    image_ref: Optional[str] = Field(None, description="Path to the generated image")
    duration: float = Field(..., description="Scene duration in seconds", gt=0)
    transition: TransitionType = Field(
        default=TransitionType.FADE,
        description="Transition into the next scene"
    )

    class Config:
        """Pydantic config."""
        frozen = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scene):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def has_image(self) -> bool:
        return bool(self.image_ref)


def total_duration(scenes: list[Scene]) -> float:
    """Sum of scene durations, i.e. the job's nominal runtime.

    Rounded to `DURATION_PRECISION` places so float noise from adding tenths
    never makes a conforming job miss its integer target.
    """
    return round(math.fsum(scene.duration for scene in scenes), DURATION_PRECISION)
