"""Shared fakes for scenereel tests (no API keys, no ffmpeg required)."""

import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest

from scenereel.acquisition import ImageAcquirer
from scenereel.editor.assembler import TimelineAssembler
from scenereel.editor.backends import BaseBackend
from scenereel.models import Scene, TransitionType
from scenereel.pipeline import Pipeline
from scenereel.services.imagen import ImagePayload
from scenereel.store import MemorySceneStore


def make_scenes(durations: Sequence[float], prefix: str = "prompt") -> List[Scene]:
    """Scenes with distinct prompts ``prompt-0``, ``prompt-1``..."""
    return [
        Scene(
            description=f"scene {i + 1}",
            image_prompt=f"{prefix}-{i}",
            duration=duration,
            transition=TransitionType.FADE,
        )
        for i, duration in enumerate(durations)
    ]


def with_images(scenes: List[Scene], image_dir: Path) -> List[Scene]:
    image_dir.mkdir(parents=True, exist_ok=True)
    result = []
    for i, scene in enumerate(scenes):
        path = image_dir / f"{i}.png"
        path.write_bytes(scene.image_prompt.encode())
        result.append(scene.model_copy(update={"image_ref": str(path)}))
    return result


class FakeAnthropicClient:
    """Stands in for AnthropicClient; returns canned replies."""

    def __init__(self, response: str) -> None:
        self.response = response
        self.calls: List[dict] = []

    def create_message(self, prompt, max_tokens=4096, system=None, temperature=0.7, cancel_token=None):
        self.calls.append({"prompt": prompt, "system": system})
        return self.response


class FakeAnalyzer:
    """Returns fresh copies of fixed scenes, or raises `error`."""

    def __init__(self, durations: Sequence[float] = (6, 4), error: Optional[Exception] = None) -> None:
        self.durations = list(durations)
        self.error = error
        self.calls = 0

    def analyze(self, script_text, target_duration_seconds, cancel_token=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return make_scenes(self.durations)


class FakeSynthesizer:
    """Image bytes are the prompt itself, so results can be traced back."""

    def __init__(
        self,
        fail_prompts: Sequence[str] = (),
        raise_prompts: Sequence[str] = (),
        latency: Optional[Callable[[str], float]] = None,
    ) -> None:
        self.fail_prompts = set(fail_prompts)
        self.raise_prompts = set(raise_prompts)
        self.latency = latency
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def synthesize(self, image_prompt: str) -> Optional[ImagePayload]:
        if self.latency is not None:
            time.sleep(self.latency(image_prompt))
        with self._lock:
            self.calls.append(image_prompt)
        if image_prompt in self.raise_prompts:
            raise RuntimeError(f"backend down for {image_prompt}")
        if image_prompt in self.fail_prompts:
            return None
        return ImagePayload(data=image_prompt.encode(), mime_type="image/png")


class FakeBackend(BaseBackend):
    """Backend that records plans and writes a placeholder file.

    Progress steps deliberately include a regression (0.5 -> 0.3).
    """

    name = "fake"
    STEPS = (0.1, 0.5, 0.3, 0.9, 1.0)

    def __init__(self, error: Optional[Exception] = None) -> None:
        super().__init__()
        self.error = error
        self.plans = []
        self.staged = []

    def _initialize(self) -> None:
        pass

    def _render(self, plan, staged, output_path, report, cancel_token):
        self.plans.append(plan)
        self.staged.append([path.name for path in staged])
        if self.error is not None:
            raise self.error
        for fraction in self.STEPS:
            report(fraction)
        output_path.write_bytes(b"video")


class UpdateRecorder:
    def __init__(self) -> None:
        self.updates = []

    def __call__(self, job) -> None:
        self.updates.append(job)


@pytest.fixture
def backend():
    fake = FakeBackend()
    fake.initialize()
    return fake


@pytest.fixture
def recorder():
    return UpdateRecorder()


@pytest.fixture
def build_pipeline(tmp_path, backend, recorder):
    """Factory wiring a Pipeline from fakes; keyword args override parts."""
    pipelines = []

    def factory(analyzer=None, synthesizer=None, render_backend=None, store=None):
        pipeline = Pipeline(
            analyzer=analyzer or FakeAnalyzer(),
            acquirer=ImageAcquirer(synthesizer or FakeSynthesizer(), tmp_path / "images"),
            assembler=TimelineAssembler(render_backend or backend, tmp_path / "output"),
            store=store if store is not None else MemorySceneStore(),
            on_update=recorder,
        )
        pipelines.append(pipeline)
        return pipeline

    yield factory
    for pipeline in pipelines:
        pipeline.shutdown()
