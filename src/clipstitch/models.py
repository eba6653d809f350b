"""Data models for concatenation requests and their outcomes."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from clipstitch.errors import InvalidInputError

PathLike = Union[str, Path]


class AttemptOutcome(str, Enum):
    """Terminal classification of one ffmpeg run."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    TIMEOUT = "timeout"


class PipelineState(str, Enum):
    """States a single concatenation request moves through."""

    IDLE = "idle"
    PREPARING = "preparing"
    PROBING = "probing"
    INVOKING = "invoking"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class TrimSpec:
    """Sub-range of the concatenated timeline to emit.

    Offsets are relative to the start of the first segment.
    """

    start_offset_seconds: float
    duration_seconds: float

    def __post_init__(self) -> None:
        if self.start_offset_seconds < 0:
            raise InvalidInputError(
                f"Trim start offset must be >= 0, got {self.start_offset_seconds}"
            )
        if self.duration_seconds <= 0:
            raise InvalidInputError(
                f"Trim duration must be > 0, got {self.duration_seconds}"
            )


@dataclass
class FileStats:
    """Subset of stat() results the pipeline cares about."""

    size: int
    mtime: float
    ctime: float


@dataclass
class Attempt:
    """One ffmpeg execution within a request."""

    number: int
    outcome: AttemptOutcome
    elapsed_seconds: float = 0.0
    error: Optional[BaseException] = None


@dataclass
class ConcatResult:
    """Returned by a successful concatenation."""

    output_path: Path
    segment_count: int
    attempts: list[Attempt] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)
