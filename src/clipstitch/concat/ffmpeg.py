"""Event-emitting wrapper around an ffmpeg subprocess.

A command is assembled fluently (input, input options, output options,
output), listeners are attached with ``on()``, and ``run()`` launches the
process without blocking. A monitor thread reads stderr, turns ffmpeg's
``time=`` stats into progress events, and fires exactly one of ``end`` or
``error`` when the process exits.

Events and their callback arguments:

    start     (command_line: str)
    progress  (info: dict) - keys ``timemark`` (seconds) and ``percent``
              (float or None when the total duration is unknown)
    end       ()
    error     (error: Exception, stderr: str) - the stderr tail, plus any
              storage-visibility lines seen earlier in the run
"""

import re
import shlex
import signal
import subprocess
import threading
from collections import defaultdict, deque
from typing import Any, Callable, Optional

from clipstitch.concat.retry import is_transient_diagnostic
from clipstitch.utils.logging import get_logger

log = get_logger(__name__)

EVENTS = ("start", "progress", "end", "error")

_TIME_RE = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_LINE_SPLIT_RE = re.compile(r"[\r\n]")


class FfmpegExitError(Exception):
    """ffmpeg exited with a non-zero status."""

    def __init__(self, returncode: int):
        self.returncode = returncode
        if returncode < 0:
            message = f"ffmpeg was killed by signal {-returncode}"
        else:
            message = f"ffmpeg exited with code {returncode}"
        super().__init__(message)


def _timestamp_seconds(match: re.Match) -> float:
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class FfmpegCommand:
    """One ffmpeg invocation."""

    STDERR_TAIL_LINES = 40
    MAX_TRANSIENT_LINES = 10
    READ_CHUNK_BYTES = 4096

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.ffmpeg_path = ffmpeg_path
        self._popen = popen
        self._input: Optional[str] = None
        self._input_options: list[str] = []
        self._output_options: list[str] = []
        self._output: Optional[str] = None
        self._listeners: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._process: Optional[subprocess.Popen] = None
        self._monitor: Optional[threading.Thread] = None
        self._stderr_tail: deque[str] = deque(maxlen=self.STDERR_TAIL_LINES)
        self._transient_lines: list[str] = []
        self.expected_duration: Optional[float] = None

    # --- Builder ---

    def input(self, path: str) -> "FfmpegCommand":
        self._input = str(path)
        return self

    def input_options(self, *options: str) -> "FfmpegCommand":
        self._input_options.extend(options)
        return self

    def output_options(self, *options: str) -> "FfmpegCommand":
        self._output_options.extend(options)
        return self

    def output(self, path: str) -> "FfmpegCommand":
        self._output = str(path)
        return self

    def on(self, event: str, callback: Callable[..., Any]) -> "FfmpegCommand":
        """Register a listener. Several listeners per event are allowed."""
        if event not in EVENTS:
            raise ValueError(f"Unknown ffmpeg event: {event}")
        self._listeners[event].append(callback)
        return self

    def build_args(self) -> list[str]:
        """Full argv, input options before ``-i`` and output options before the output."""
        if self._input is None or self._output is None:
            raise ValueError("ffmpeg command needs both an input and an output")
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-y",
            *self._input_options,
            "-i", self._input,
            *self._output_options,
            self._output,
        ]

    # --- Execution ---

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    @property
    def diagnostic(self) -> str:
        """The stderr tail, preceded by any storage-visibility lines that scrolled out of it."""
        tail = list(self._stderr_tail)
        dropped = [line for line in self._transient_lines if line not in tail]
        return "\n".join(dropped + tail)

    def run(self) -> None:
        """Launch ffmpeg and return immediately.

        A spawn failure (e.g. ffmpeg not installed) is reported through the
        ``error`` event like any other failure.
        """
        args = self.build_args()
        try:
            self._process = self._popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            log.error("ffmpeg_spawn_failed", ffmpeg_path=self.ffmpeg_path, error=str(e))
            self._emit("error", e, "")
            return

        self._emit("start", shlex.join(args))
        self._monitor = threading.Thread(
            target=self._watch_process, daemon=True, name="ffmpeg-monitor"
        )
        self._monitor.start()

    def kill(self, sig: int = signal.SIGKILL) -> bool:
        """Send a signal to the running process.

        Returns:
            True if a signal was delivered, False if there was nothing to kill.
        """
        if self._process is None or self._process.poll() is not None:
            return False
        try:
            self._process.send_signal(sig)
        except ProcessLookupError:
            return False
        log.warning("ffmpeg_signalled", pid=self._process.pid, signal=sig)
        return True

    def wait(self, timeout: Optional[float] = None) -> None:
        """Join the monitor thread (mainly for tests and shutdown)."""
        if self._monitor is not None:
            self._monitor.join(timeout)

    # --- Internal methods ---

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(*args)
            except Exception as e:
                # A broken listener must not stop the remaining ones
                log.error("ffmpeg_listener_error", event_name=event, error=str(e))

    def _watch_process(self) -> None:
        process = self._process
        assert process is not None

        if process.stderr is not None:
            self._pump_stderr(process.stderr)

        returncode = process.wait()
        if returncode == 0:
            self._emit("end")
        else:
            self._emit("error", FfmpegExitError(returncode), self.diagnostic)

    def _pump_stderr(self, stream: Any) -> None:
        """Read stderr in chunks; ffmpeg separates stats updates with CR."""
        pending = ""
        reader = getattr(stream, "read1", stream.read)
        while True:
            chunk = reader(self.READ_CHUNK_BYTES)
            if not chunk:
                break
            pending += chunk.decode("utf-8", errors="replace")
            *lines, pending = _LINE_SPLIT_RE.split(pending)
            for line in lines:
                self._handle_line(line)
        if pending:
            self._handle_line(pending)

    def _handle_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return

        time_match = _TIME_RE.search(line)
        if time_match:
            timemark = _timestamp_seconds(time_match)
            percent = None
            if self.expected_duration:
                percent = min(100.0, timemark / self.expected_duration * 100.0)
            self._emit("progress", {"timemark": timemark, "percent": percent})
            return

        # Progress lines are noise in the diagnostic; everything else is kept
        self._stderr_tail.append(line)
        if (
            len(self._transient_lines) < self.MAX_TRANSIENT_LINES
            and is_transient_diagnostic(line)
        ):
            self._transient_lines.append(line)

        if self.expected_duration is None:
            duration_match = _DURATION_RE.search(line)
            if duration_match:
                self.expected_duration = _timestamp_seconds(duration_match) or None
