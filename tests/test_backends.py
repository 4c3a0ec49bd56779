"""Tests for render backends (no real encoding)."""

import pytest

from scenereel.cancel import CancelToken
from scenereel.editor.backends import (
    FfmpegBackend,
    MoviepyBackend,
    _RenderProgressLogger,
    create_backend,
    fit_to_frame,
    parse_progress_line,
    stage_inputs,
)
from scenereel.editor.timeline import plan_timeline
from scenereel.errors import RenderError, RunCancelled

from conftest import FakeBackend, make_scenes, with_images


@pytest.fixture
def plan(tmp_path):
    return plan_timeline(with_images(make_scenes([5, 8, 6]), tmp_path / "images"))


class TestBaseBackend:
    """Lifecycle shared by all backends."""

    def test_render_before_initialize(self, plan, tmp_path):
        backend = FakeBackend()
        assert not backend.ready
        with pytest.raises(RenderError, match="not initialized"):
            backend.render(plan, tmp_path / "out.mp4")
        assert backend.plans == []

    def test_initialize_is_idempotent(self):
        backend = FakeBackend()
        backend.initialize()
        backend.initialize()
        assert backend.ready

    def test_render_stages_inputs_and_writes_output(self, backend, plan, tmp_path):
        fractions = []
        output = backend.render(plan, tmp_path / "out" / "video.mp4", on_progress=fractions.append)

        assert output.read_bytes() == b"video"
        assert backend.staged == [["img0.png", "img1.png", "img2.png"]]
        assert fractions == list(FakeBackend.STEPS)

    def test_failure_becomes_render_error(self, plan, tmp_path):
        backend = FakeBackend(error=RuntimeError("out of memory"))
        backend.initialize()
        output = tmp_path / "video.mp4"
        output.write_bytes(b"stale")

        with pytest.raises(RenderError) as excinfo:
            backend.render(plan, output)

        assert excinfo.value.diagnostic == "out of memory"
        assert "out of memory" in str(excinfo.value)
        assert not output.exists()

    def test_cancelled_before_render(self, backend, plan, tmp_path):
        token = CancelToken()
        token.cancel()
        with pytest.raises(RunCancelled):
            backend.render(plan, tmp_path / "video.mp4", cancel_token=token)
        assert backend.plans == []


class TestStageInputs:
    def test_missing_image(self, plan, tmp_path):
        (tmp_path / "images" / "1.png").unlink()
        staging = tmp_path / "staging"
        staging.mkdir()
        with pytest.raises(RenderError, match="scene 2"):
            stage_inputs(plan, staging)

    def test_copies_in_order(self, plan, tmp_path):
        staging = tmp_path / "staging"
        staging.mkdir()
        staged = stage_inputs(plan, staging)
        assert [p.read_bytes() for p in staged] == [b"prompt-0", b"prompt-1", b"prompt-2"]


class TestFfmpegCommand:
    """Command construction for the ffmpeg backend."""

    def test_build_command(self, plan, tmp_path):
        backend = FfmpegBackend(ffmpeg_path="/usr/bin/ffmpeg", preset="fast")
        staged = [tmp_path / f"img{i}.png" for i in range(3)]
        cmd = backend.build_command(plan, staged, tmp_path / "out.mp4")

        assert cmd[0] == "/usr/bin/ffmpeg"
        inputs = [cmd[i:i + 6] for i, arg in enumerate(cmd) if arg == "-loop"]
        assert inputs == [
            ["-loop", "1", "-t", "5", "-i", str(staged[0])],
            ["-loop", "1", "-t", "9", "-i", str(staged[1])],
            ["-loop", "1", "-t", "7", "-i", str(staged[2])],
        ]
        assert cmd[cmd.index("-filter_complex") + 1] == plan.filter_graph
        assert cmd[cmd.index("-map") + 1] == "[out]"
        assert cmd[cmd.index("-t", cmd.index("-filter_complex")) + 1] == "19"
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert cmd[cmd.index("-progress") + 1] == "pipe:1"
        assert cmd[-1] == str(tmp_path / "out.mp4")

    def test_render_requires_initialize(self, plan, tmp_path):
        with pytest.raises(RenderError):
            FfmpegBackend(ffmpeg_path="ffmpeg").render(plan, tmp_path / "out.mp4")


class TestProgressParsing:
    @pytest.mark.parametrize("line,expected", [
        ("out_time_us=5000000\n", 0.5),
        ("out_time_ms=2500000", 0.25),
        ("out_time_us=20000000", 1.0),
        ("out_time_us=-5", 0.0),
        ("progress=end", 1.0),
        ("progress=continue", None),
        ("frame=12", None),
        ("out_time_us=N/A", None),
    ])
    def test_parse(self, line, expected):
        assert parse_progress_line(line, 10.0) == expected

    def test_moviepy_logger_reports_fraction(self):
        fractions = []
        progress_logger = _RenderProgressLogger(fractions.append, None)
        progress_logger.bars["frame_index"] = {"total": 10, "index": -1}

        progress_logger.bars_callback("frame_index", "index", 4)
        progress_logger.bars_callback("frame_index", "total", 10)
        progress_logger.bars_callback("chunk", "index", 3)
        progress_logger.bars_callback("frame_index", "index", 9)

        assert fractions == [0.5, 1.0]

    def test_moviepy_logger_cancels(self):
        token = CancelToken()
        token.cancel()
        progress_logger = _RenderProgressLogger(lambda f: None, token)
        progress_logger.bars["frame_index"] = {"total": 10, "index": -1}
        with pytest.raises(RunCancelled):
            progress_logger.bars_callback("frame_index", "index", 1)


class _StubClip:
    def __init__(self, w, h):
        self.w, self.h = w, h
        self.resized_to = None

    def resized(self, size):
        self.resized_to = size
        return size


class TestFitToFrame:
    def test_wide_image_fits_width(self):
        assert fit_to_frame(_StubClip(2000, 1000), (1280, 720)) == (1280, 640)

    def test_tall_image_fits_height(self):
        assert fit_to_frame(_StubClip(1024, 1024), (1280, 720)) == (720, 720)

    def test_exact_size_untouched(self):
        clip = _StubClip(1280, 720)
        assert fit_to_frame(clip, (1280, 720)) is clip


class TestCreateBackend:
    def test_known_backends(self):
        assert isinstance(create_backend("moviepy"), MoviepyBackend)
        assert isinstance(create_backend("ffmpeg", ffmpeg_path="ffmpeg"), FfmpegBackend)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="moviepy, ffmpeg"):
            create_backend("blender")
