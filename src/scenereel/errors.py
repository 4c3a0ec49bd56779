"""Error taxonomy for scenereel runs."""

from typing import Optional, Sequence


class ScenereelError(Exception):
    """Base class for all scenereel errors."""


class ValidationError(ScenereelError):
    """Run inputs are invalid (empty script, non-positive duration).

    Raised before a run starts; the job phase is left untouched.
    """


class PipelineError(ScenereelError):
    """A terminal failure of the current run."""


class AnalysisError(PipelineError):
    """The script analyzer returned malformed or unusable scene data."""


class EmptyScriptError(AnalysisError):
    """The script analyzer produced zero scenes."""


class IncompleteImageSetError(PipelineError):
    """One or more scenes ended acquisition without an image."""

    def __init__(self, missing_indices: Sequence[int], total: int) -> None:
        self.missing_indices = list(missing_indices)
        self.total = total
        super().__init__(
            f"{len(self.missing_indices)} of {total} scene image(s) could not be "
            f"generated (scenes {', '.join(str(i + 1) for i in self.missing_indices)})"
        )


class RenderError(PipelineError):
    """The render backend failed or was not ready."""

    def __init__(self, message: str, diagnostic: Optional[str] = None) -> None:
        self.diagnostic = diagnostic
        if diagnostic:
            message = f"{message}: {diagnostic}"
        super().__init__(message)


class RunCancelled(ScenereelError):
    """The run was superseded or cancelled by the caller."""
