"""Crossfade-chain timeline planning.

A timeline turns N ordered still images, each with its own duration, into
one continuous stream. Adjacent stills are blended pairwise: the running
stream ``[v{i}]`` is merged with input ``i + 1`` by an ``xfade`` whose offset
sits ``fade`` seconds before the cumulative end of scene ``i``::

    cumulative_i = d_0 + ... + d_i
    offset_i     = cumulative_i - fade_i
    fade_i       = min(crossfade, d_i)

Input 0 starts at 0 and is held ``d_0`` seconds. Input ``i + 1`` starts at
``offset_i`` and is held ``d_{i+1} + fade_i`` seconds, so after every merge
the running stream is exactly ``cumulative`` long and the output runs for
``sum(d)`` seconds with no gaps. Every input's last frame stays on screen
through its outgoing fade.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..errors import RenderError
from ..models import Scene, TransitionType, total_duration

logger = logging.getLogger(__name__)

DEFAULT_CROSSFADE = 1.0
DEFAULT_FRAME_SIZE = (1280, 720)
DEFAULT_FPS = 30

# Offsets and holds are rounded to this many places to keep float noise out
# of the ffmpeg command line.
_PRECISION = 6

# ffmpeg xfade names for transitions with their own visual. Labels missing
# here render as a fade.
XFADE_NAMES = {
    TransitionType.FADE: "fade",
}


def _round(value: float) -> float:
    return round(value, _PRECISION)


def format_seconds(value: float) -> str:
    """Render seconds for ffmpeg: ``4.0 -> "4"``, ``12.25 -> "12.25"``."""
    text = f"{value:.{_PRECISION}f}".rstrip("0").rstrip(".")
    return text or "0"


@dataclass(frozen=True)
class TimelineInput:
    """One still image placed on the timeline."""

    index: int
    image_path: str
    duration: float
    start: float
    hold: float

    @property
    def end(self) -> float:
        return _round(self.start + self.hold)

    @property
    def label(self) -> str:
        return f"[s{self.index}]"


@dataclass(frozen=True)
class Crossfade:
    """Blend between input ``index`` and ``index + 1``."""

    index: int
    offset: float
    duration: float
    transition: TransitionType = TransitionType.FADE

    @property
    def xfade_name(self) -> str:
        return XFADE_NAMES.get(self.transition, "fade")

    @property
    def output_label(self) -> str:
        return f"[v{self.index + 1}]"


@dataclass(frozen=True)
class TimelinePlan:
    """Everything a render backend needs to produce the video."""

    inputs: Tuple[TimelineInput, ...]
    crossfades: Tuple[Crossfade, ...]
    total_duration: float
    frame_size: Tuple[int, int] = DEFAULT_FRAME_SIZE
    fps: int = DEFAULT_FPS

    @property
    def offsets(self) -> List[float]:
        return [crossfade.offset for crossfade in self.crossfades]

    @property
    def filter_graph(self) -> str:
        """The ffmpeg ``-filter_complex`` string, ending in ``[out]``."""
        width, height = self.frame_size
        parts = [
            f"[{item.index}:v]scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={self.fps},"
            f"format=yuv420p{item.label}"
            for item in self.inputs
        ]

        last_stream = self.inputs[0].label
        for crossfade in self.crossfades:
            next_stream = self.inputs[crossfade.index + 1].label
            parts.append(
                f"{last_stream}{next_stream}xfade=transition={crossfade.xfade_name}"
                f":duration={format_seconds(crossfade.duration)}"
                f":offset={format_seconds(crossfade.offset)}{crossfade.output_label}"
            )
            last_stream = crossfade.output_label

        parts.append(f"{last_stream}format=yuv420p[out]")
        return ";".join(parts)


def plan_timeline(
    scenes: Sequence[Scene],
    crossfade: float = DEFAULT_CROSSFADE,
    frame_size: Tuple[int, int] = DEFAULT_FRAME_SIZE,
    fps: int = DEFAULT_FPS,
) -> TimelinePlan:
    """Lay out `scenes` as a crossfade chain.

    Args:
        scenes: Ordered scenes, each with an image.
        crossfade: Nominal crossfade length in seconds. A scene shorter than
            this gets a fade as long as the scene itself.
        frame_size: Output (width, height).
        fps: Output frame rate.

    Returns:
        The plan; ``total_duration`` is always the plain sum of durations.

    Raises:
        ValueError: If `scenes` is empty or `crossfade` is not positive.
        RenderError: If a scene has no image.
    """
    if not scenes:
        raise ValueError("Cannot plan a timeline without scenes")
    if crossfade <= 0:
        raise ValueError(f"Crossfade must be positive, got {crossfade}")

    missing = [i + 1 for i, scene in enumerate(scenes) if not scene.image_ref]
    if missing:
        raise RenderError(f"Scenes without images cannot be rendered: {missing}")

    inputs = [
        TimelineInput(
            index=0,
            image_path=scenes[0].image_ref,
            duration=scenes[0].duration,
            start=0.0,
            hold=scenes[0].duration,
        )
    ]
    crossfades: List[Crossfade] = []
    cumulative = 0.0

    for i in range(len(scenes) - 1):
        cumulative += scenes[i].duration
        fade = min(crossfade, scenes[i].duration)
        offset = _round(cumulative - fade)

        label = scenes[i].transition
        if not label.implemented:
            logger.debug(f"Transition '{label.value}' after scene {i + 1} rendered as a fade")

        crossfades.append(Crossfade(index=i, offset=offset, duration=fade, transition=label))
        nxt = scenes[i + 1]
        inputs.append(
            TimelineInput(
                index=i + 1,
                image_path=nxt.image_ref,
                duration=nxt.duration,
                start=offset,
                hold=_round(nxt.duration + fade),
            )
        )

    total = total_duration(scenes)
    return TimelinePlan(
        inputs=tuple(inputs),
        crossfades=tuple(crossfades),
        total_duration=total,
        frame_size=frame_size,
        fps=fps,
    )
