"""Timeline planning and video assembly."""

from .timeline import (
    Crossfade,
    TimelineInput,
    TimelinePlan,
    plan_timeline,
    format_seconds,
)
from .backends import (
    RenderBackend,
    BaseBackend,
    MoviepyBackend,
    FfmpegBackend,
    create_backend,
)
from .assembler import TimelineAssembler

__all__ = [
    # Timeline
    "Crossfade",
    "TimelineInput",
    "TimelinePlan",
    "plan_timeline",
    "format_seconds",
    # Backends
    "RenderBackend",
    "BaseBackend",
    "MoviepyBackend",
    "FfmpegBackend",
    "create_backend",
    # Assembly
    "TimelineAssembler",
]
