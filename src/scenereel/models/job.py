"""Job state model."""

from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field

from ..errors import ValidationError
from .scene import Scene


class JobPhase(str, Enum):
    """Job phase enum."""
    IDLE = "idle"
    ANALYZING = "analyzing"
    ACQUIRING_IMAGES = "acquiring_images"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"

    @property
    def at_rest(self) -> bool:
        """A new run may start from this phase."""
        return self in (JobPhase.IDLE, JobPhase.DONE, JobPhase.FAILED)


class AcquisitionProgress(BaseModel):
    """Settled image requests out of the batch total."""

    current: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    @property
    def complete(self) -> bool:
        return self.total > 0 and self.current >= self.total


class Job(BaseModel):
    """One end-to-end script-to-video run."""

    script: str = Field(default="", description="Source script text")
    requested_duration_seconds: int = Field(default=0, description="Target runtime", ge=0)
    phase: JobPhase = Field(default=JobPhase.IDLE, description="Current phase")
    scenes: List[Scene] = Field(default_factory=list, description="Ordered scenes")
    progress: AcquisitionProgress = Field(default_factory=AcquisitionProgress)
    render_progress: float = Field(default=0.0, description="Render percent", ge=0, le=100)
    result: Optional[str] = Field(None, description="Path of the rendered video")
    error: Optional[str] = Field(None, description="Terminal error message")

    class Config:
        """Pydantic config."""
        frozen = False

    def snapshot(self) -> "Job":
        """Deep copy safe to hand to other threads."""
        return self.model_copy(deep=True)


def requested_duration(minutes: int, seconds: int) -> int:
    """Convert user-entered minutes and seconds into a total in seconds.

    Raises:
        ValidationError: If either field is out of range or the total is zero.
    """
    if minutes < 0:
        raise ValidationError("Minutes must not be negative")
    if not 0 <= seconds < 60:
        raise ValidationError("Seconds must be between 0 and 59")
    total = minutes * 60 + seconds
    if total <= 0:
        raise ValidationError("Total duration must be greater than 0 seconds")
    return total


def validate_run_inputs(script: str, duration_seconds: int) -> None:
    """Reject a run before it starts.

    Raises:
        ValidationError: On blank script or non-positive duration.
    """
    if not script or not script.strip():
        raise ValidationError("Script must not be empty")
    if duration_seconds <= 0:
        raise ValidationError("Total duration must be greater than 0 seconds")
