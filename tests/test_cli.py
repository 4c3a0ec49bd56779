"""Tests for the CLI surface that need no credentials."""

import pytest
from typer.testing import CliRunner

from scenereel import __version__
from scenereel.cli import ProgressPrinter, app
from scenereel.config import config
from scenereel.models import AcquisitionProgress, Job, JobPhase
from scenereel.store import YamlSceneStore

from conftest import make_scenes

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "workspace", tmp_path)
    return tmp_path


class TestCli:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status_without_scenes(self, workspace):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "No scenes stored" in result.output

    def test_status_lists_scenes(self, workspace):
        YamlSceneStore(config.store_path).bulk_put(make_scenes([6, 4]))
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Scenes: 2" in result.output
        assert "Total duration: 10s" in result.output

    def test_make_rejects_empty_script(self, workspace):
        script = workspace / "script.txt"
        script.write_text("   ")
        result = runner.invoke(app, ["make", str(script), "--seconds", "10"])
        assert result.exit_code == 1
        assert "Script must not be empty" in result.output

    def test_make_rejects_zero_duration(self, workspace):
        script = workspace / "script.txt"
        script.write_text("A cat in space.")
        result = runner.invoke(app, ["make", str(script), "--minutes", "0", "--seconds", "0"])
        assert result.exit_code == 1
        assert "greater than 0" in result.output


class TestProgressPrinter:
    def test_prints_phase_counts_and_render_steps(self, capsys):
        printer = ProgressPrinter()
        printer(Job(phase=JobPhase.ANALYZING))
        printer(Job(phase=JobPhase.ACQUIRING_IMAGES, progress=AcquisitionProgress(current=0, total=2)))
        printer(Job(phase=JobPhase.ACQUIRING_IMAGES, progress=AcquisitionProgress(current=1, total=2)))
        printer(Job(phase=JobPhase.ACQUIRING_IMAGES, progress=AcquisitionProgress(current=1, total=2)))
        printer(Job(phase=JobPhase.ASSEMBLING, render_progress=0))
        printer(Job(phase=JobPhase.ASSEMBLING, render_progress=15))
        printer(Job(phase=JobPhase.ASSEMBLING, render_progress=18))

        lines = capsys.readouterr().out.splitlines()
        assert lines == [
            "🧠 Analyzing script...",
            "🎨 Generating images...",
            "   0 / 2",
            "   1 / 2",
            "📼 Rendering video...",
            "   0%",
            "   10%",
        ]
