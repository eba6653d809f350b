"""Segment concatenation orchestrator.

One request moves through:

    IDLE -> PREPARING -> PROBING -> INVOKING(n) -> CLEANUP -> DONE
                            ^            |
                            +- retryable-+        (fatal/timeout/exhausted)
                                         +------> CLEANUP -> FAILED

The working directory holding ``concat.txt`` is unique per request and is
removed on every exit path.
"""

import os
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, Optional, Sequence

from clipstitch.concat.descriptor import build_concat_descriptor
from clipstitch.concat.invoker import TranscodeInvoker
from clipstitch.concat.prober import CacheProber
from clipstitch.concat.retry import RetryCoordinator
from clipstitch.errors import CleanupWarning, InvalidInputError
from clipstitch.models import ConcatResult, PathLike, PipelineState, TrimSpec
from clipstitch.storage.base import StorageProvider
from clipstitch.storage.local import LocalStorage
from clipstitch.utils.config import Config
from clipstitch.utils.logging import get_logger

log = get_logger(__name__)


class ConcatPipeline:
    """Stitches recorded segments into a single MP4 clip.

    Safe to share between threads: requests keep no state on the instance
    apart from the optional concurrency limiter.
    """

    WORKDIR_PREFIX = "replay-concat-"
    DESCRIPTOR_NAME = "concat.txt"

    def __init__(
        self,
        storage: Optional[StorageProvider] = None,
        invoker: Optional[TranscodeInvoker] = None,
        prober: Optional[CacheProber] = None,
        temp_root: PathLike = "/tmp",
        max_attempts: int = RetryCoordinator.DEFAULT_MAX_ATTEMPTS,
        retry_delay_seconds: float = RetryCoordinator.RETRY_DELAY_SECONDS,
        max_concurrent_jobs: int = 0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialise the pipeline.

        Args:
            storage: Filesystem collaborator. Defaults to LocalStorage.
            invoker: Runs one ffmpeg attempt.
            prober: Cache warmer. Defaults to one over ``storage``.
            temp_root: Parent of the per-request working directories.
            max_attempts: Upper bound on ffmpeg attempts per request.
            retry_delay_seconds: Fixed pause before a retry.
            max_concurrent_jobs: Bound on simultaneous requests, 0 for none.
            sleep: Injected for tests.
        """
        self.storage = storage or LocalStorage()
        self.invoker = invoker or TranscodeInvoker()
        self.prober = prober or CacheProber(self.storage)
        self.temp_root = Path(temp_root)
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._limiter: Optional[threading.BoundedSemaphore] = (
            threading.BoundedSemaphore(max_concurrent_jobs) if max_concurrent_jobs > 0 else None
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        storage: Optional[StorageProvider] = None,
    ) -> "ConcatPipeline":
        """Build a pipeline from loaded YAML configuration."""
        storage = storage or LocalStorage()
        return cls(
            storage=storage,
            invoker=TranscodeInvoker(
                ffmpeg_path=config.ffmpeg.ffmpeg_path,
                timeout_seconds=config.concat.timeout_seconds,
            ),
            prober=CacheProber(storage, max_workers=config.concat.probe_workers),
            temp_root=config.concat.temp_root,
            max_attempts=config.concat.max_attempts,
            retry_delay_seconds=config.concat.retry_delay_seconds,
            max_concurrent_jobs=config.concat.max_concurrent_jobs,
        )

    def concatenate(
        self,
        segments: Sequence[PathLike],
        output_path: PathLike,
        trim: Optional[TrimSpec] = None,
    ) -> ConcatResult:
        """Concatenate ``segments`` (in the given order) into ``output_path``.

        Args:
            segments: Absolute segment paths, oldest first.
            output_path: Where the MP4 is written. Must not be read after a failure.
            trim: Optional sub-range of the concatenated timeline.

        Returns:
            ConcatResult describing the attempts made.

        Raises:
            InvalidInputError: ``segments`` is empty. Nothing is touched on disk.
            TranscodeError: Terminal ffmpeg failure, timeout included.
        """
        if not segments:
            raise InvalidInputError("No segments provided for concatenation")

        if self._limiter is None:
            return self._run(segments, output_path, trim)

        with self._limiter:
            return self._run(segments, output_path, trim)

    # --- Internal methods ---

    def _run(
        self,
        segments: Sequence[PathLike],
        output_path: PathLike,
        trim: Optional[TrimSpec],
    ) -> ConcatResult:
        started = time.monotonic()
        request_id = str(uuid.uuid4())
        work_dir = self.temp_root / f"{self.WORKDIR_PREFIX}{request_id}"
        descriptor_path = work_dir / self.DESCRIPTOR_NAME
        output = Path(output_path)
        segment_paths = [os.path.abspath(str(segment)) for segment in segments]

        rlog = log.bind(request_id=request_id, output=str(output))
        self._transition(rlog, PipelineState.IDLE)

        final_state = PipelineState.FAILED
        try:
            self._transition(rlog, PipelineState.PREPARING)
            self.storage.ensure_directory(work_dir)
            self.storage.ensure_directory(output.parent)

            content = build_concat_descriptor(segment_paths)
            self.storage.write_file(descriptor_path, content)

            rlog.info(
                "concat_started",
                segment_count=len(segment_paths),
                trim_start=trim.start_offset_seconds if trim else None,
                trim_duration=trim.duration_seconds if trim else None,
            )
            rlog.debug("concat_descriptor_written", path=str(descriptor_path), content=content)

            self._transition(rlog, PipelineState.PROBING)
            self.prober.refresh(segment_paths)

            def before_retry() -> None:
                self._transition(rlog, PipelineState.PROBING)
                self.prober.refresh(segment_paths)

            def invoke() -> None:
                self._transition(rlog, PipelineState.INVOKING)
                self.invoker.execute(descriptor_path, output, trim)

            coordinator = RetryCoordinator(
                retry_delay_seconds=self.retry_delay_seconds,
                before_retry=before_retry,
                sleep=self._sleep,
            )
            attempts = coordinator.run(invoke, self.max_attempts)
            final_state = PipelineState.DONE
        finally:
            self._transition(rlog, PipelineState.CLEANUP)
            self._cleanup(rlog, work_dir)
            self._transition(rlog, final_state)

        elapsed = time.monotonic() - started
        rlog.info(
            "concat_complete",
            attempts=len(attempts),
            elapsed_seconds=round(elapsed, 2),
        )
        return ConcatResult(
            output_path=output,
            segment_count=len(segment_paths),
            attempts=attempts,
            elapsed_seconds=elapsed,
        )

    def _cleanup(self, rlog, work_dir: Path) -> None:
        """Remove the working directory; failures are logged, never raised."""
        try:
            self.storage.delete_directory(work_dir, recursive=True, force=True)
        except Exception as e:
            rlog.warning(
                "concat_cleanup_failed",
                category=CleanupWarning.__name__,
                work_dir=str(work_dir),
                error=str(e),
            )

    @staticmethod
    def _transition(rlog, state: PipelineState) -> None:
        rlog.debug("concat_state", state=state.value)
