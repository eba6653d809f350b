"""Unit tests for the event-emitting FfmpegCommand wrapper.

Tests cover:
- argv layout
- start/progress/end events for a clean exit
- error event with the stderr tail on a non-zero exit
- storage-visibility lines survive a long stderr and still drive a retry
- spawn failure reported through the error event
- kill only signals a live process
"""

import io
import signal
from unittest.mock import MagicMock

import pytest

from clipstitch.concat.ffmpeg import FfmpegCommand, FfmpegExitError
from clipstitch.concat.invoker import TranscodeInvoker
from clipstitch.errors import RetryableTranscodeError


class FakeProcess:
    """Minimal Popen double with a canned stderr and exit status."""

    def __init__(self, stderr: bytes = b"", returncode: int = 0):
        self.stderr = io.BytesIO(stderr)
        self.returncode = None
        self.pid = 1234
        self.signals: list[int] = []
        self._final_returncode = returncode

    def wait(self, timeout=None) -> int:
        self.returncode = self._final_returncode
        return self.returncode

    def poll(self):
        return self.returncode

    def send_signal(self, sig: int) -> None:
        self.signals.append(sig)


def _make_command(process: FakeProcess) -> tuple[FfmpegCommand, MagicMock]:
    popen = MagicMock(return_value=process)
    command = (
        FfmpegCommand("/usr/bin/ffmpeg", popen=popen)
        .input("/work/concat.txt")
        .input_options("-f", "concat", "-safe", "0")
        .output_options("-c", "copy")
        .output("/clips/out.mp4")
    )
    return command, popen


def _record_events(command: FfmpegCommand) -> list[tuple]:
    events: list[tuple] = []
    for name in ("start", "progress", "end", "error"):
        command.on(name, lambda *args, _name=name: events.append((_name, *args)))
    return events


def test_build_args_layout() -> None:
    command, _ = _make_command(FakeProcess())

    assert command.build_args() == [
        "/usr/bin/ffmpeg", "-hide_banner", "-y",
        "-f", "concat", "-safe", "0",
        "-i", "/work/concat.txt",
        "-c", "copy",
        "/clips/out.mp4",
    ]


def test_build_args_requires_input_and_output() -> None:
    with pytest.raises(ValueError):
        FfmpegCommand().input("/work/concat.txt").build_args()


def test_unknown_event_rejected() -> None:
    with pytest.raises(ValueError):
        FfmpegCommand().on("finish", lambda: None)


def test_clean_exit_emits_start_progress_end() -> None:
    stderr = (
        b"Input #0, concat, from '/work/concat.txt':\n"
        b"  Duration: 00:01:00.00, start: 0.000000, bitrate: N/A\n"
        b"frame=  450 fps=0.0 q=-1.0 size=    1024kB time=00:00:30.00 bitrate=279.6kbits/s\r"
        b"frame=  900 fps=0.0 q=-1.0 size=    2048kB time=00:01:00.00 bitrate=279.6kbits/s\r"
    )
    command, popen = _make_command(FakeProcess(stderr, returncode=0))
    events = _record_events(command)

    command.run()
    command.wait(timeout=2.0)

    names = [e[0] for e in events]
    assert names == ["start", "progress", "progress", "end"]
    assert "/work/concat.txt" in events[0][1]
    assert events[1][1] == {"timemark": 30.0, "percent": 50.0}
    assert events[2][1]["percent"] == 100.0
    popen.assert_called_once()


def test_progress_percent_uses_expected_duration() -> None:
    stderr = b"size=  10kB time=00:00:15.00 bitrate=1.0kbits/s\r"
    command, _ = _make_command(FakeProcess(stderr))
    command.expected_duration = 60
    events = _record_events(command)

    command.run()
    command.wait(timeout=2.0)

    assert events[1] == ("progress", {"timemark": 15.0, "percent": 25.0})


def test_progress_percent_unknown_without_duration() -> None:
    stderr = b"size=  10kB time=00:00:15.00 bitrate=1.0kbits/s\r"
    command, _ = _make_command(FakeProcess(stderr))
    events = _record_events(command)

    command.run()
    command.wait(timeout=2.0)

    assert events[1][1]["percent"] is None


def test_failed_exit_emits_error_with_stderr_tail() -> None:
    stderr = (
        b"[concat @ 0x55d] Impossible to open '/out/user1/seg2.ts'\n"
        b"/work/concat.txt: Input/output error\n"
    )
    command, _ = _make_command(FakeProcess(stderr, returncode=1))
    events = _record_events(command)

    command.run()
    command.wait(timeout=2.0)

    assert [e[0] for e in events] == ["start", "error"]
    error, tail = events[1][1], events[1][2]
    assert isinstance(error, FfmpegExitError)
    assert error.returncode == 1
    assert "Impossible to open" in tail
    assert "Input/output error" in tail


def _visibility_failure_then_noise(noise_lines: int) -> bytes:
    lines = [b"[concat @ 0x55d] Impossible to open '/out/user1/seg2.ts'"]
    lines += [f"warning line {i}".encode() for i in range(1, noise_lines + 1)]
    return b"\n".join(lines) + b"\n"


def test_transient_line_kept_after_tail_scrolls() -> None:
    stderr = _visibility_failure_then_noise(FfmpegCommand.STDERR_TAIL_LINES + 20)
    command, _ = _make_command(FakeProcess(stderr, returncode=1))
    events = _record_events(command)

    command.run()
    command.wait(timeout=2.0)

    diagnostic = events[-1][2]
    assert "Impossible to open" not in command.stderr_tail
    assert diagnostic.startswith("[concat @ 0x55d] Impossible to open")
    assert diagnostic.endswith("warning line 60")
    assert "warning line 20\n" not in diagnostic


def test_transient_line_in_tail_not_duplicated() -> None:
    command, _ = _make_command(FakeProcess(_visibility_failure_then_noise(3), returncode=1))
    events = _record_events(command)

    command.run()
    command.wait(timeout=2.0)

    assert events[-1][2].count("Impossible to open") == 1


def test_long_stderr_visibility_failure_is_retryable() -> None:
    stderr = _visibility_failure_then_noise(60)

    def _factory() -> FfmpegCommand:
        popen = MagicMock(return_value=FakeProcess(stderr, returncode=1))
        return FfmpegCommand("/usr/bin/ffmpeg", popen=popen)

    invoker = TranscodeInvoker(timeout_seconds=5.0, command_factory=_factory)

    with pytest.raises(RetryableTranscodeError, match="Impossible to open"):
        invoker.execute("/work/concat.txt", "/clips/out.mp4")


def test_killed_process_reports_signal() -> None:
    error = FfmpegExitError(-signal.SIGKILL)

    assert "signal 9" in str(error)


def test_spawn_failure_reported_as_error_event() -> None:
    popen = MagicMock(side_effect=FileNotFoundError("ffmpeg"))
    command = FfmpegCommand("ffmpeg", popen=popen).input("/a").output("/b")
    events = _record_events(command)

    command.run()

    assert [e[0] for e in events] == ["error"]
    assert isinstance(events[0][1], FileNotFoundError)


def test_listener_exception_does_not_stop_others() -> None:
    command, _ = _make_command(FakeProcess())
    calls = []

    def _broken() -> None:
        raise RuntimeError("listener bug")

    command.on("end", _broken).on("end", lambda: calls.append("end"))

    command.run()
    command.wait(timeout=2.0)

    assert calls == ["end"]


def test_kill_without_process_is_noop() -> None:
    assert FfmpegCommand().kill() is False


def test_kill_signals_running_process() -> None:
    process = FakeProcess()
    command, _ = _make_command(process)
    command._process = process

    assert command.kill(signal.SIGKILL) is True
    assert process.signals == [signal.SIGKILL]
