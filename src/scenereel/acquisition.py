"""Concurrent per-scene image acquisition."""

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .cancel import CancelToken, check
from .errors import IncompleteImageSetError
from .models import AcquisitionProgress, Scene
from .services.imagen import ImageSynthesizer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[AcquisitionProgress], None]

# How often a waiting batch re-checks its cancel token.
CANCEL_POLL_INTERVAL = 0.2


class ImageAcquirer:
    """Fetches one image per scene, concurrently, keeping scene order.

    A failed request only costs its own scene an image. Whether a batch
    with missing images is acceptable is decided by the caller, see
    `require_complete`.
    """

    def __init__(
        self,
        synthesizer: ImageSynthesizer,
        output_dir: Path,
        max_workers: int = 4,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._synthesizer = synthesizer
        self._output_dir = Path(output_dir)
        self._max_workers = max_workers

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def acquire_all(
        self,
        scenes: List[Scene],
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> List[Scene]:
        """Acquire images for `scenes`.

        Args:
            scenes: Ordered scenes; not modified.
            on_progress: Called once up front with current=0, then once per
                settled request. Always called from this thread.
            cancel_token: Checked while waiting for requests to settle.

        Returns:
            Copies of `scenes`, index-aligned with the input, with `image_ref`
            set where acquisition succeeded and None elsewhere.

        Raises:
            RunCancelled: If the token fires before the batch settles.
        """
        total = len(scenes)
        progress = AcquisitionProgress(current=0, total=total)
        self._emit(on_progress, progress)
        if not scenes:
            return []

        check(cancel_token)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        image_refs: List[Optional[str]] = [None] * total

        logger.info(f"Acquiring {total} images (max {self._max_workers} concurrent)")
        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, total),
            thread_name_prefix="scenereel-image",
        )
        try:
            future_to_index: Dict[Future, int] = {
                executor.submit(self._acquire_one, scene): i
                for i, scene in enumerate(scenes)
            }
            pending = set(future_to_index)
            timeout = CANCEL_POLL_INTERVAL if cancel_token is not None else None

            while pending:
                check(cancel_token)
                done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
                for future in done:
                    index = future_to_index[future]
                    try:
                        image_refs[index] = future.result()
                    except Exception as e:
                        logger.warning(f"Image for scene {index + 1} failed: {e}")
                    progress.current += 1
                    self._emit(on_progress, progress)
        finally:
            # Running requests cannot be interrupted; their results are dropped.
            executor.shutdown(wait=False, cancel_futures=True)

        acquired = sum(1 for ref in image_refs if ref)
        logger.info(f"Acquired {acquired}/{total} images")
        return [
            scene.model_copy(update={"image_ref": ref})
            for scene, ref in zip(scenes, image_refs)
        ]

    def _acquire_one(self, scene: Scene) -> Optional[str]:
        payload = self._synthesizer.synthesize(scene.image_prompt)
        if payload is None or not payload.data:
            logger.warning(f"No image returned for scene {scene.id}")
            return None

        path = self._output_dir / f"{scene.id}{payload.extension}"
        path.write_bytes(payload.data)
        logger.debug(f"Saved image for scene {scene.id} to {path}")
        return str(path)

    @staticmethod
    def _emit(on_progress: Optional[ProgressCallback], progress: AcquisitionProgress) -> None:
        if on_progress is not None:
            on_progress(progress.model_copy())


def require_complete(scenes: List[Scene]) -> List[Scene]:
    """All-or-nothing gate applied after a batch settles.

    Raises:
        IncompleteImageSetError: If any scene is missing its image.
    """
    missing = [i for i, scene in enumerate(scenes) if not scene.has_image]
    if missing:
        raise IncompleteImageSetError(missing, len(scenes))
    return scenes
