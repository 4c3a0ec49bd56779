"""Pipeline orchestrator: analyze -> acquire images -> assemble."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from .acquisition import ImageAcquirer, require_complete
from .agents.analyzer import SceneAnalyzer
from .cancel import CancelToken, check
from .editor.assembler import TimelineAssembler
from .errors import EmptyScriptError, PipelineError, RunCancelled
from .models import AcquisitionProgress, Job, JobPhase, Scene
from .models.job import validate_run_inputs
from .store import SceneStore

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Job], None]


class Pipeline:
    """Drives one job at a time through its phases.

    Phases advance ``idle -> analyzing -> acquiring_images -> assembling ->
    done``; any phase can drop to ``failed``. Every run ends in ``done`` or
    ``failed``. A new run may start from ``idle``, ``done`` or ``failed``
    and always begins from a freshly reset job.

    Only the active run publishes state. `submit_run` cancels whatever run
    is in flight; that run stops at its next checkpoint and its results are
    discarded.
    """

    def __init__(
        self,
        analyzer: SceneAnalyzer,
        acquirer: ImageAcquirer,
        assembler: TimelineAssembler,
        store: SceneStore,
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        self._analyzer = analyzer
        self._acquirer = acquirer
        self._assembler = assembler
        self._store = store
        self._on_update = on_update

        self._lock = threading.RLock()
        self._job = Job()
        self._token: Optional[CancelToken] = None
        self._job_token: Optional[CancelToken] = None
        self._future: Optional[Future] = None
        # One worker: a superseded run must unwind before the next one starts.
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scenereel-run")

    @property
    def job(self) -> Job:
        """Snapshot of the active job."""
        with self._lock:
            return self._job.snapshot()

    @property
    def is_running(self) -> bool:
        with self._lock:
            if self._future is not None and not self._future.done():
                return True
            return not self._job.phase.at_rest

    def submit_run(self, script: str, duration_seconds: int) -> "Future[Job]":
        """Start a run in the background, superseding any run in flight.

        Raises:
            ValidationError: Immediately, if the inputs are invalid.
        """
        validate_run_inputs(script, duration_seconds)
        token = CancelToken()
        with self._lock:
            if self._token is not None:
                self._token.cancel("superseded by a new run")
            self._token = token
            self._future = self._executor.submit(self.run, script, duration_seconds, token)
            return self._future

    def cancel(self) -> None:
        """Cancel the run in flight, if any."""
        with self._lock:
            if self._token is not None:
                self._token.cancel("cancelled by caller")

    def shutdown(self, wait: bool = True) -> None:
        self.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "Pipeline":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def run(
        self,
        script: str,
        duration_seconds: int,
        cancel_token: Optional[CancelToken] = None,
    ) -> Job:
        """Run the whole pipeline on the calling thread.

        Returns:
            The finished job, in phase ``done`` or ``failed``.

        Raises:
            ValidationError: If the inputs are invalid; no state changes.
        """
        validate_run_inputs(script, duration_seconds)
        token = cancel_token or CancelToken()
        job = Job(script=script, requested_duration_seconds=duration_seconds)

        with self._lock:
            if token.cancelled:
                job.phase = JobPhase.FAILED
                job.error = "Run cancelled"
                return job
            if self._token is not None and self._token is not token:
                self._token.cancel("superseded by a new run")
            self._token = token
            self._job = job
            self._job_token = token

        try:
            self._advance(job, phase=JobPhase.ANALYZING)
            self._store.clear()
            scenes = self._analyze(job, token)

            self._advance(
                job,
                phase=JobPhase.ACQUIRING_IMAGES,
                scenes=scenes,
                progress=AcquisitionProgress(current=0, total=len(scenes)),
            )
            scenes = self._acquirer.acquire_all(
                scenes,
                on_progress=lambda progress: self._report_acquisition(job, progress),
                cancel_token=token,
            )
            self._advance(job, scenes=scenes)
            require_complete(scenes)
            check(token)

            self._advance(job, phase=JobPhase.ASSEMBLING, render_progress=0.0)
            result = self._assembler.assemble(
                scenes,
                on_progress=lambda percent: self._report_render(job, percent),
                cancel_token=token,
            )
            check(token)

            self._store.bulk_put(scenes)
            self._advance(job, phase=JobPhase.DONE, result=str(result))

        except RunCancelled as e:
            logger.info(f"Run stopped: {e}")
            self._fail(job, "Run cancelled")
        except PipelineError as e:
            logger.error(f"Run failed during {job.phase.value}: {e}")
            self._fail(job, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error during {job.phase.value}")
            self._fail(job, f"An unexpected error occurred while creating the video: {e}")

        return job.snapshot()

    def _analyze(self, job: Job, token: CancelToken) -> List[Scene]:
        scenes = self._analyzer.analyze(job.script, job.requested_duration_seconds, cancel_token=token)
        check(token)
        if not scenes:
            raise EmptyScriptError(
                "The script produced no scenes. Try again with a more detailed script."
            )
        return scenes

    def _advance(self, job: Job, **changes) -> None:
        with self._lock:
            for name, value in changes.items():
                setattr(job, name, value)
            if "phase" in changes:
                logger.info(f"Job phase: {job.phase.value}")
            self._publish(job)

    def _report_acquisition(self, job: Job, progress: AcquisitionProgress) -> None:
        with self._lock:
            if progress.total == job.progress.total and progress.current < job.progress.current:
                return
            job.progress = progress
            self._publish(job)

    def _report_render(self, job: Job, percent: float) -> None:
        with self._lock:
            if percent <= job.render_progress:
                return
            job.render_progress = min(100.0, percent)
            self._publish(job)

    def _fail(self, job: Job, message: str) -> None:
        with self._lock:
            job.phase = JobPhase.FAILED
            job.result = None
            job.error = message
            self._publish(job)

    def _is_current(self, job: Job) -> bool:
        """True while `job` belongs to the newest run; callers hold the lock."""
        return job is self._job and self._job_token is self._token

    def _publish(self, job: Job) -> None:
        """Notify the listener; callers hold the lock. Superseded jobs stay silent."""
        if self._on_update is None or not self._is_current(job):
            return
        try:
            self._on_update(job.snapshot())
        except Exception:
            logger.exception("Job update listener failed")
