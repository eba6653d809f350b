"""Shared pytest fixtures for clipstitch tests."""

from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from clipstitch.concat.ffmpeg import FfmpegExitError
from clipstitch.concat.invoker import TranscodeInvoker
from clipstitch.storage.local import LocalStorage

RETRYABLE_STDERR = "[concat @ 0x55] Impossible to open '/out/user1/seg2.ts'"
FATAL_STDERR = "Unknown encoder 'h265_nonexistent'"


class FakeCommand:
    """Stand-in for FfmpegCommand that records builder calls.

    ``script`` is called from ``run()`` with the command itself and decides
    which events fire. A script that fires nothing simulates a hung ffmpeg.
    """

    def __init__(self, script: Optional[Callable[["FakeCommand"], None]] = None):
        self.script = script
        self.inputs: list[str] = []
        self.input_opts: list[str] = []
        self.output_opts: list[str] = []
        self.outputs: list[str] = []
        self.listeners: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self.kill_calls: list[int] = []
        self.run_calls = 0
        self.expected_duration: Optional[float] = None
        self.pid = 4242
        self.stderr_tail = ""

    def input(self, path):
        self.inputs.append(path)
        return self

    def input_options(self, *options):
        self.input_opts.extend(options)
        return self

    def output_options(self, *options):
        self.output_opts.extend(options)
        return self

    def output(self, path):
        self.outputs.append(path)
        return self

    def on(self, event, callback):
        self.listeners[event].append(callback)
        return self

    def emit(self, event, *args):
        for callback in list(self.listeners[event]):
            callback(*args)

    def run(self):
        self.run_calls += 1
        if self.script is not None:
            self.script(self)

    def kill(self, sig):
        self.kill_calls.append(sig)
        return True


def succeed(command: FakeCommand) -> None:
    command.emit("start", "ffmpeg -f concat ...")
    command.emit("progress", {"timemark": 5.0, "percent": 50.0})
    command.emit("end")


def fail_with(stderr: str, returncode: int = 1) -> Callable[[FakeCommand], None]:
    def _script(command: FakeCommand) -> None:
        command.emit("error", FfmpegExitError(returncode), stderr)

    return _script


def hang(command: FakeCommand) -> None:
    """Never fires end or error."""


class CommandFactory:
    """Hands out FakeCommands driven by a list of scripts.

    Each call consumes the next script; the last one repeats.
    """

    def __init__(self, *scripts: Callable[[FakeCommand], None]):
        self.scripts = list(scripts)
        self.commands: list[FakeCommand] = []

    def __call__(self) -> FakeCommand:
        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        command = FakeCommand(script)
        self.commands.append(command)
        return command

    @property
    def invocations(self) -> int:
        return sum(c.run_calls for c in self.commands)


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    """Parent directory for per-request working directories."""
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def storage() -> LocalStorage:
    return LocalStorage()


@pytest.fixture
def segment_files(tmp_path: Path) -> list[Path]:
    """Three small segment files in recorder naming."""
    seg_dir = tmp_path / "segments"
    seg_dir.mkdir()
    paths = []
    for i in range(3):
        seg = seg_dir / f"2025-11-15T040603-segment_{i:05d}.ts"
        seg.write_bytes(b"\x47" * 188 * (i + 1))
        paths.append(seg)
    return paths


def make_invoker(factory: CommandFactory, timeout_seconds: float = 5.0) -> TranscodeInvoker:
    return TranscodeInvoker(timeout_seconds=timeout_seconds, command_factory=factory)
