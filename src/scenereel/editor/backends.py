"""Render backends that turn a `TimelinePlan` into a video file."""

import logging
import shutil
import subprocess
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from proglog import ProgressBarLogger

from ..cancel import CancelToken, check
from ..errors import RenderError, RunCancelled
from .timeline import TimelinePlan, format_seconds

logger = logging.getLogger(__name__)

# Receives the fraction of the render completed, 0.0-1.0.
FractionCallback = Callable[[float], None]

FASTSTART_PARAMS = ["-movflags", "+faststart"]


class RenderBackend(Protocol):
    """A render engine with an explicit readiness state."""

    @property
    def ready(self) -> bool:
        ...

    def initialize(self) -> None:
        ...

    def render(
        self,
        plan: TimelinePlan,
        output_path: Path,
        on_progress: Optional[FractionCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Path:
        ...


class BaseBackend(ABC):
    """Shared lifecycle for render backends.

    A backend instance renders one timeline at a time. Each render copies
    its input stills into a private staging directory first, so inputs are
    named ``img0.png``, ``img1.jpg``... regardless of where they came from.
    """

    name = "base"

    def __init__(self) -> None:
        self._ready = False
        self._lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._ready

    def initialize(self) -> None:
        """Prepare the backend. Safe to call more than once."""
        if self._ready:
            return
        try:
            self._initialize()
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"Render backend '{self.name}' failed to initialize", diagnostic=str(e)) from e
        self._ready = True
        logger.info(f"Render backend '{self.name}' ready")

    def render(
        self,
        plan: TimelinePlan,
        output_path: Path,
        on_progress: Optional[FractionCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Path:
        """Render `plan` to `output_path`.

        Raises:
            RenderError: If the backend is not initialized or rendering fails.
            RunCancelled: If the token fires mid-render.
        """
        if not self._ready:
            raise RenderError(f"Render backend '{self.name}' is not initialized")

        report = on_progress or (lambda fraction: None)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            with tempfile.TemporaryDirectory(prefix="scenereel-render-") as tmp:
                staging_dir = Path(tmp)
                try:
                    staged = stage_inputs(plan, staging_dir)
                    check(cancel_token)
                    self._render(plan, staged, output_path, report, cancel_token)
                except (RenderError, RunCancelled):
                    output_path.unlink(missing_ok=True)
                    raise
                except Exception as e:
                    output_path.unlink(missing_ok=True)
                    raise RenderError(f"{self.name} render failed", diagnostic=str(e)) from e

        if not output_path.exists():
            raise RenderError(f"{self.name} render produced no output file")
        return output_path

    @abstractmethod
    def _initialize(self) -> None:
        ...

    @abstractmethod
    def _render(
        self,
        plan: TimelinePlan,
        staged: List[Path],
        output_path: Path,
        report: FractionCallback,
        cancel_token: Optional[CancelToken],
    ) -> None:
        ...


def stage_inputs(plan: TimelinePlan, staging_dir: Path) -> List[Path]:
    """Copy each input still into `staging_dir` as ``img{i}<ext>``."""
    staged: List[Path] = []
    for item in plan.inputs:
        source = Path(item.image_path)
        if not source.is_file():
            raise RenderError(f"Image not found for scene {item.index + 1}: {source}")
        target = staging_dir / f"img{item.index}{source.suffix or '.png'}"
        shutil.copyfile(source, target)
        staged.append(target)
    return staged


class _RenderProgressLogger(ProgressBarLogger):
    """proglog logger forwarding moviepy's frame bar as a fraction."""

    FRAME_BARS = ("frame_index", "t")

    def __init__(self, report: FractionCallback, cancel_token: Optional[CancelToken]) -> None:
        super().__init__()
        self._report = report
        self._cancel_token = cancel_token

    def bars_callback(self, bar, attr, value, old_value=None):
        check(self._cancel_token)
        if bar not in self.FRAME_BARS or attr != "index":
            return
        total = self.bars[bar].get("total")
        if total:
            self._report(min(1.0, (value + 1) / total))


def fit_to_frame(clip, frame_size):
    """Scale a clip to fit inside `frame_size`, preserving its aspect ratio."""
    width, height = frame_size
    scale = min(width / clip.w, height / clip.h)
    if abs(scale - 1.0) < 1e-3:
        return clip
    return clip.resized((max(1, round(clip.w * scale)), max(1, round(clip.h * scale))))


class MoviepyBackend(BaseBackend):
    """Composites the stills with moviepy and encodes through its ffmpeg writer."""

    name = "moviepy"

    def __init__(self, codec: str = "libx264", preset: str = "medium") -> None:
        super().__init__()
        self._codec = codec
        self._preset = preset

    def _initialize(self) -> None:
        # Import here so that merely constructing the backend stays cheap.
        import moviepy  # noqa: F401
        import imageio_ffmpeg

        imageio_ffmpeg.get_ffmpeg_exe()

    def _render(self, plan, staged, output_path, report, cancel_token):
        from moviepy import CompositeVideoClip, ImageClip
        from moviepy.video.fx import CrossFadeIn

        clips = []
        for item, path in zip(plan.inputs, staged):
            clip = fit_to_frame(ImageClip(str(path), duration=item.hold), plan.frame_size)
            clip = clip.with_start(item.start).with_position("center")
            if item.index > 0:
                fade = plan.crossfades[item.index - 1].duration
                clip = clip.with_effects([CrossFadeIn(fade)])
            clips.append(clip)

        video = CompositeVideoClip(clips, size=plan.frame_size).with_duration(plan.total_duration)
        try:
            logger.debug(f"Writing {len(clips)} stills to {output_path}")
            video.write_videofile(
                str(output_path),
                fps=plan.fps,
                codec=self._codec,
                audio=False,
                preset=self._preset,
                ffmpeg_params=FASTSTART_PARAMS + ["-pix_fmt", "yuv420p"],
                logger=_RenderProgressLogger(report, cancel_token),
            )
        finally:
            video.close()
            for clip in clips:
                clip.close()


def find_ffmpeg() -> str:
    """Locate an ffmpeg binary: imageio-ffmpeg's bundled one, else PATH."""
    import imageio_ffmpeg

    try:
        return imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError:
        path = shutil.which("ffmpeg")
        if not path:
            raise RenderError("ffmpeg executable not found")
        return path


def parse_progress_line(line: str, total_duration: float) -> Optional[float]:
    """Map one ``-progress`` key=value line to a completed fraction."""
    key, _, value = line.strip().partition("=")
    if key == "progress" and value == "end":
        return 1.0
    # out_time_ms is microseconds too, despite its name.
    if key in ("out_time_us", "out_time_ms") and total_duration > 0:
        try:
            micros = int(value)
        except ValueError:
            return None
        return max(0.0, min(1.0, micros / 1_000_000 / total_duration))
    return None


class FfmpegBackend(BaseBackend):
    """Runs the plan's filter graph through the ffmpeg CLI."""

    name = "ffmpeg"

    def __init__(self, ffmpeg_path: Optional[str] = None, preset: str = "medium") -> None:
        super().__init__()
        self._ffmpeg = ffmpeg_path
        self._preset = preset

    @property
    def ffmpeg_path(self) -> Optional[str]:
        return self._ffmpeg

    def _initialize(self) -> None:
        self._ffmpeg = self._ffmpeg or find_ffmpeg()
        result = subprocess.run(
            [self._ffmpeg, "-hide_banner", "-version"],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise RenderError("ffmpeg is not usable", diagnostic=result.stderr.strip())
        logger.debug(result.stdout.splitlines()[0] if result.stdout else self._ffmpeg)

    def build_command(self, plan: TimelinePlan, staged: List[Path], output_path: Path) -> List[str]:
        """Assemble the full ffmpeg argv for `plan`."""
        cmd = [self._ffmpeg or "ffmpeg", "-hide_banner", "-loglevel", "error"]
        for item, path in zip(plan.inputs, staged):
            cmd += ["-loop", "1", "-t", format_seconds(item.hold), "-i", str(path)]
        cmd += [
            "-filter_complex", plan.filter_graph,
            "-map", "[out]",
            "-t", format_seconds(plan.total_duration),
            "-r", str(plan.fps),
            "-c:v", "libx264",
            "-preset", self._preset,
            "-pix_fmt", "yuv420p",
            *FASTSTART_PARAMS,
            "-progress", "pipe:1",
            "-nostats",
            "-y", str(output_path),
        ]
        return cmd

    def _render(self, plan, staged, output_path, report, cancel_token):
        cmd = self.build_command(plan, staged, output_path)
        logger.debug(f"Running: {' '.join(cmd)}")

        stderr_path = staged[0].parent / "ffmpeg.log"
        with open(stderr_path, "w+") as stderr:
            process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=stderr, text=True)
            try:
                for line in process.stdout:
                    if cancel_token is not None and cancel_token.cancelled:
                        process.terminate()
                        check(cancel_token)
                    fraction = parse_progress_line(line, plan.total_duration)
                    if fraction is not None:
                        report(fraction)
                returncode = process.wait()
            finally:
                if process.poll() is None:
                    process.kill()
                    process.wait()

            if returncode != 0:
                stderr.seek(0)
                diagnostic = stderr.read().strip()[-1000:]
                raise RenderError(f"ffmpeg exited with code {returncode}", diagnostic=diagnostic)


BACKENDS = {
    MoviepyBackend.name: MoviepyBackend,
    FfmpegBackend.name: FfmpegBackend,
}


def create_backend(name: str, **kwargs) -> BaseBackend:
    """Instantiate a backend by name; call `initialize()` before rendering."""
    try:
        backend_cls = BACKENDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown render backend '{name}'. Choose from: {', '.join(BACKENDS)}"
        ) from None
    return backend_cls(**kwargs)
