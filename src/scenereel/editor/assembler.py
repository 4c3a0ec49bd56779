"""Timeline assembler: scenes with images -> one rendered video."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..cancel import CancelToken, check
from ..errors import RenderError
from ..models import Scene
from .backends import RenderBackend
from .timeline import DEFAULT_CROSSFADE, DEFAULT_FPS, DEFAULT_FRAME_SIZE, TimelinePlan, plan_timeline

logger = logging.getLogger(__name__)

# Receives the render percentage, 0-100.
PercentCallback = Callable[[float], None]


class TimelineAssembler:
    """Plans the crossfade chain for a scene list and renders it once."""

    def __init__(
        self,
        backend: RenderBackend,
        output_dir: Path,
        crossfade: float = DEFAULT_CROSSFADE,
        frame_size: Tuple[int, int] = DEFAULT_FRAME_SIZE,
        fps: int = DEFAULT_FPS,
    ) -> None:
        self._backend = backend
        self._output_dir = Path(output_dir)
        self._crossfade = crossfade
        self._frame_size = frame_size
        self._fps = fps

    @property
    def ready(self) -> bool:
        return self._backend.ready

    def plan(self, scenes: List[Scene]) -> TimelinePlan:
        return plan_timeline(
            scenes,
            crossfade=self._crossfade,
            frame_size=self._frame_size,
            fps=self._fps,
        )

    def assemble(
        self,
        scenes: List[Scene],
        on_progress: Optional[PercentCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        output_path: Optional[Path] = None,
    ) -> Path:
        """Render `scenes` into a single video.

        Args:
            scenes: Ordered scenes, every one with an image.
            on_progress: Receives a non-decreasing percentage; 100 is
                reported exactly once, after the render succeeds.
            cancel_token: Forwarded to the backend.
            output_path: Destination; defaults to a timestamped file in the
                output directory.

        Returns:
            Path to the rendered video.

        Raises:
            RenderError: If images are missing, the backend is not ready, or
                the render fails.
        """
        if not scenes:
            raise RenderError("No scenes to render")
        if not self.ready:
            raise RenderError("Render backend is not ready")

        plan = self.plan(scenes)
        check(cancel_token)
        logger.info(
            f"Rendering {len(plan.inputs)} scenes, {len(plan.crossfades)} crossfades, "
            f"{plan.total_duration:g}s total"
        )
        logger.debug(f"Filter graph: {plan.filter_graph}")

        if output_path is None:
            output_path = self._output_dir / f"video-{time.strftime('%Y%m%d-%H%M%S')}.mp4"

        progress = _MonotonicPercent(on_progress)
        result = self._backend.render(
            plan,
            Path(output_path),
            on_progress=progress.update,
            cancel_token=cancel_token,
        )
        progress.finish()
        logger.info(f"Rendered video: {result}")
        return result


class _MonotonicPercent:
    """Turns backend fractions into a clamped, non-decreasing percentage.

    Values below 100 are forwarded as they rise; 100 itself is held back
    until `finish()` so it is reported once, on success only.
    """

    def __init__(self, callback: Optional[PercentCallback]) -> None:
        self._callback = callback
        self._last = 0.0
        self._lock = threading.Lock()

    def update(self, fraction: float) -> None:
        percent = min(99.0, max(0.0, fraction * 100.0))
        with self._lock:
            if percent <= self._last:
                return
            self._last = percent
        if self._callback is not None:
            self._callback(percent)

    def finish(self) -> None:
        with self._lock:
            self._last = 100.0
        if self._callback is not None:
            self._callback(100.0)
