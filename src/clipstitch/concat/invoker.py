"""Single ffmpeg concat-demuxer run guarded by a watchdog."""

import signal
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from clipstitch.concat.ffmpeg import FfmpegCommand
from clipstitch.concat.retry import error_from_diagnostic
from clipstitch.errors import TranscodeTimeoutError
from clipstitch.models import PathLike, TrimSpec
from clipstitch.utils.logging import get_logger

log = get_logger(__name__)


def _format_seconds(value: float) -> str:
    """Render seconds for the command line without a spurious ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def build_input_options() -> list[str]:
    """Concat demuxer, absolute paths allowed in the descriptor."""
    return ["-f", "concat", "-safe", "0"]


def build_output_options(trim: Optional[TrimSpec] = None) -> list[str]:
    """Stream copy with the moov atom moved to the front.

    When trimming, ``-ss`` goes in front of the output options (after the
    input, so the seek is frame-accurate) and ``-t`` goes last.
    """
    options = ["-c", "copy", "-movflags", "+faststart"]
    if trim is not None:
        options = ["-ss", _format_seconds(trim.start_offset_seconds)] + options
        options += ["-t", _format_seconds(trim.duration_seconds)]
    return options


class SingleShot:
    """Future that only the first of several racing outcomes may settle."""

    def __init__(self) -> None:
        self._future: Future = Future()
        self._lock = threading.Lock()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def succeed(self) -> bool:
        with self._lock:
            if self._future.done():
                return False
            self._future.set_result(None)
            return True

    def fail(self, error: BaseException) -> bool:
        with self._lock:
            if self._future.done():
                return False
            self._future.set_exception(error)
            return True

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until settled; re-raises the failure if there was one."""
        self._future.result(timeout)


class TranscodeInvoker:
    """Runs one ffmpeg attempt and settles exactly once.

    Settlement comes from whichever fires first: the command's ``end``
    event, its ``error`` event, or the watchdog. The watchdog SIGKILLs the
    process at the ceiling; it is cancelled as soon as end or error arrives.
    """

    TIMEOUT_SECONDS = 600.0

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_seconds: float = TIMEOUT_SECONDS,
        command_factory: Optional[Callable[[], FfmpegCommand]] = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.timeout_seconds = timeout_seconds
        self._command_factory = command_factory or (lambda: FfmpegCommand(ffmpeg_path))

    def execute(
        self,
        descriptor_path: PathLike,
        output_path: PathLike,
        trim: Optional[TrimSpec] = None,
    ) -> None:
        """Concatenate the descriptor's segments into ``output_path``.

        Raises:
            RetryableTranscodeError: ffmpeg failed with a storage-visibility diagnostic.
            FatalTranscodeError: ffmpeg failed for any other reason.
            TranscodeTimeoutError: The watchdog killed the process.
        """
        outcome = SingleShot()
        command = (
            self._command_factory()
            .input(str(descriptor_path))
            .input_options(*build_input_options())
            .output_options(*build_output_options(trim))
            .output(str(output_path))
        )
        if trim is not None:
            command.expected_duration = trim.duration_seconds

        def on_timeout() -> None:
            if outcome.settled:
                return
            log.error(
                "ffmpeg_watchdog_fired",
                timeout_seconds=self.timeout_seconds,
                pid=command.pid,
            )
            command.kill(signal.SIGKILL)
            outcome.fail(
                TranscodeTimeoutError(
                    f"ffmpeg process timed out after {self.timeout_seconds:g} seconds",
                    command.stderr_tail,
                )
            )

        watchdog = threading.Timer(self.timeout_seconds, on_timeout)
        watchdog.daemon = True

        def on_start(command_line: str) -> None:
            log.debug("ffmpeg_started", command=command_line)

        def on_progress(info: dict[str, Any]) -> None:
            percent = info.get("percent")
            if percent is not None:
                log.debug("ffmpeg_progress", percent=round(percent))

        def on_end() -> None:
            watchdog.cancel()
            if outcome.succeed():
                log.debug("ffmpeg_completed", output=str(output_path))

        def on_error(error: Exception, stderr: str) -> None:
            watchdog.cancel()
            failure = error_from_diagnostic(
                f"ffmpeg failed: {error}",
                stderr,
                getattr(error, "returncode", None),
            )
            if outcome.fail(failure):
                log.error("ffmpeg_failed", error=str(error), stderr=stderr[-500:])

        (
            command.on("start", on_start)
            .on("progress", on_progress)
            .on("end", on_end)
            .on("error", on_error)
        )

        watchdog.start()
        try:
            command.run()
        except Exception as e:
            watchdog.cancel()
            outcome.fail(error_from_diagnostic(f"ffmpeg could not be started: {e}", ""))

        try:
            outcome.wait()
        finally:
            watchdog.cancel()
