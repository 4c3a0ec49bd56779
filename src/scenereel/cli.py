"""CLI entry point for the script-to-video generator."""

import logging
import time
import typer
from pathlib import Path
from typing import Optional

from . import __version__
from .config import config
from .errors import RenderError, ValidationError
from .models import Job, JobPhase, requested_duration, total_duration
from .models.job import validate_run_inputs

app = typer.Typer(
    name="scenereel",
    help="Turn a script into a crossfaded slideshow video using AI images",
    no_args_is_help=True
)

PHASE_MESSAGES = {
    JobPhase.ANALYZING: "🧠 Analyzing script...",
    JobPhase.ACQUIRING_IMAGES: "🎨 Generating images...",
    JobPhase.ASSEMBLING: "📼 Rendering video...",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"scenereel version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
) -> None:
    """scenereel - Create videos from scripts using AI."""
    pass


class ProgressPrinter:
    """Echoes job updates: phase changes, image counts, render steps of 10%."""

    def __init__(self) -> None:
        self._phase: Optional[JobPhase] = None
        self._images = -1
        self._render_step = -1

    def __call__(self, job: Job) -> None:
        if job.phase != self._phase:
            self._phase = job.phase
            self._images = -1
            self._render_step = -1
            if job.phase in PHASE_MESSAGES:
                typer.echo(PHASE_MESSAGES[job.phase])

        if job.phase == JobPhase.ACQUIRING_IMAGES and job.progress.current != self._images:
            self._images = job.progress.current
            typer.echo(f"   {job.progress.current} / {job.progress.total}")
        elif job.phase == JobPhase.ASSEMBLING:
            step = int(job.render_progress // 10)
            if step > self._render_step:
                self._render_step = step
                typer.echo(f"   {step * 10}%")


def build_pipeline(backend_name: Optional[str] = None, on_update=None, output_dir: Optional[Path] = None):
    """Wire the production pipeline from configuration.

    The render backend is created and initialized here, once, and handed
    to the assembler.
    """
    from .acquisition import ImageAcquirer
    from .agents import ScriptAnalyzer
    from .editor import TimelineAssembler, create_backend
    from .pipeline import Pipeline
    from .services.imagen import ImagenClient
    from .store import YamlSceneStore

    config.validate_required()
    config.validate_imagen_required()

    backend = create_backend(backend_name or config.render_backend)
    backend.initialize()

    return Pipeline(
        analyzer=ScriptAnalyzer(),
        acquirer=ImageAcquirer(
            ImagenClient(),
            output_dir=config.images_dir,
            max_workers=config.image_workers,
        ),
        assembler=TimelineAssembler(
            backend,
            output_dir=output_dir or config.output_dir,
            crossfade=config.crossfade_seconds,
            frame_size=config.frame_size,
            fps=config.fps,
        ),
        store=YamlSceneStore(config.store_path),
        on_update=on_update,
    )


def _build_or_exit(backend: Optional[str], on_update, output_dir: Optional[Path] = None):
    try:
        return build_pipeline(backend, on_update=on_update, output_dir=output_dir)
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)
    except RenderError as e:
        typer.echo(f"❌ Render backend unavailable: {e}")
        raise typer.Exit(1)


def _report(job: Job) -> None:
    if job.phase == JobPhase.DONE:
        typer.echo(f"✅ Video created: {job.result}")
        typer.echo(f"   Scenes: {len(job.scenes)}")
        typer.echo(f"   Duration: {total_duration(job.scenes):g}s")
    else:
        typer.echo(f"❌ {job.error or 'Video creation failed'}")


@app.command()
def make(
    script_file: Path = typer.Argument(
        ...,
        help="Text file containing the script",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    minutes: int = typer.Option(
        0,
        "--minutes",
        "-m",
        help="Target duration, minutes part",
        min=0
    ),
    seconds: int = typer.Option(
        30,
        "--seconds",
        "-s",
        help="Target duration, seconds part",
        min=0,
        max=59
    ),
    backend: Optional[str] = typer.Option(
        None,
        "--backend",
        "-b",
        help="Render backend (moviepy or ffmpeg)"
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Directory for the rendered video (default: <workspace>/output)",
        file_okay=False,
        dir_okay=True
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Create a video from a script file."""
    setup_logging(verbose)

    script = script_file.read_text()
    try:
        duration = requested_duration(minutes, seconds)
        validate_run_inputs(script, duration)
    except ValidationError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)

    typer.echo(f"🎬 Creating video from {script_file}")
    typer.echo(f"   Target duration: {duration}s")

    with _build_or_exit(backend, ProgressPrinter(), output) as pipeline:
        job = pipeline.run(script, duration)

    _report(job)
    if job.phase != JobPhase.DONE:
        raise typer.Exit(1)


@app.command()
def watch(
    script_file: Path = typer.Argument(
        ...,
        help="Text file containing the script; re-rendered whenever it changes",
        file_okay=True,
        dir_okay=False
    ),
    minutes: int = typer.Option(0, "--minutes", "-m", help="Target duration, minutes part", min=0),
    seconds: int = typer.Option(30, "--seconds", "-s", help="Target duration, seconds part", min=0, max=59),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Render backend"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Directory for rendered videos"),
    poll: float = typer.Option(0.5, "--poll", help="File polling interval in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Re-create the video each time the script file settles after an edit."""
    from .trigger import Debouncer

    setup_logging(verbose)
    try:
        duration = requested_duration(minutes, seconds)
    except ValidationError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)

    printer = ProgressPrinter()

    def on_update(job: Job) -> None:
        printer(job)
        if job.phase in (JobPhase.DONE, JobPhase.FAILED):
            _report(job)

    pipeline = _build_or_exit(backend, on_update, output)

    def trigger(script: str) -> None:
        if not script.strip():
            return
        if pipeline.is_running:
            # Re-arm so the edit is picked up once the current run finishes.
            debouncer.touch(script)
            return
        pipeline.submit_run(script, duration)

    debouncer = Debouncer(config.debounce_seconds, trigger)
    typer.echo(f"👀 Watching {script_file} (Ctrl+C to stop)")

    last_text: Optional[str] = None
    try:
        while True:
            text = script_file.read_text() if script_file.exists() else ""
            if text != last_text:
                last_text = text
                debouncer.touch(text)
            time.sleep(poll)
    except KeyboardInterrupt:
        typer.echo("\nStopping...")
    finally:
        debouncer.cancel()
        pipeline.shutdown()


@app.command()
def status() -> None:
    """Show the scenes stored by the last completed run."""
    from .store import YamlSceneStore

    store = YamlSceneStore(config.store_path)
    scenes = store.get_all()
    if not scenes:
        typer.echo(f"❌ No scenes stored at {store.path}")
        typer.echo("   Run 'scenereel make' to create a video")
        raise typer.Exit(1)

    typer.echo(f"📁 Scenes: {len(scenes)}")
    typer.echo(f"   Total duration: {total_duration(scenes):g}s")
    typer.echo("\n📽️  Scenes:")
    for i, scene in enumerate(scenes, 1):
        status_icon = "✅" if scene.image_ref else "⏳"
        typer.echo(f"   {status_icon} {i}. {scene.duration:g}s → {scene.transition.value}")
        description = scene.description[:60] + "..." if len(scene.description) > 60 else scene.description
        typer.echo(f"      {description}")


if __name__ == "__main__":
    app()
