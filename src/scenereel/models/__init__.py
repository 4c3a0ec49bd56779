"""Data models for the script-to-video generator."""

from .scene import Scene, TransitionType, DURATION_PRECISION, total_duration
from .job import Job, JobPhase, AcquisitionProgress, requested_duration

__all__ = [
    "Scene",
    "TransitionType",
    "DURATION_PRECISION",
    "total_duration",
    "Job",
    "JobPhase",
    "AcquisitionProgress",
    "requested_duration",
]
