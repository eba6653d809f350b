"""Discovery and selection of recorder segments.

The egress recorder writes one directory per session, with files named
like ``2025-11-15T040603-segment_00000.ts``. The timestamp part is
identical across a session, so ordering comes from the trailing sequence
number.
"""

import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from clipstitch.errors import InvalidInputError
from clipstitch.models import PathLike, TrimSpec
from clipstitch.storage.base import StorageProvider
from clipstitch.utils.logging import get_logger

log = get_logger(__name__)

SEGMENT_SECONDS = 10

_SEQUENCE_RE = re.compile(r"_(\d+)\.ts$")


@dataclass(frozen=True)
class SegmentFile:
    """A segment on disk and its position in the recording."""

    filename: str
    sequence: int
    path: Path


def _is_segment_name(filename: str) -> bool:
    return filename.endswith(".ts") and "segment" in filename


def list_segments(storage: StorageProvider, directory: PathLike) -> list[SegmentFile]:
    """List a session directory's segments, oldest first.

    Files without a sequence suffix are skipped. A directory that cannot be
    listed yields an empty list.
    """
    directory = Path(directory)
    try:
        names = storage.list_files(directory, filter=_is_segment_name)
    except Exception as e:
        log.error("segment_list_failed", directory=str(directory), error=str(e))
        return []

    segments = []
    for name in names:
        match = _SEQUENCE_RE.search(name)
        if not match:
            log.warning("segment_name_unexpected", filename=name)
            continue
        segments.append(SegmentFile(name, int(match.group(1)), directory / name))

    return sorted(segments, key=lambda s: s.sequence)


def select_recent(
    segments: Sequence[SegmentFile],
    duration_minutes: float,
    segment_seconds: int = SEGMENT_SECONDS,
) -> list[SegmentFile]:
    """Return the newest segments covering ``duration_minutes``."""
    if duration_minutes <= 0:
        raise InvalidInputError(f"Duration must be positive, got {duration_minutes} minutes")
    needed = math.ceil(duration_minutes * 60 / segment_seconds)
    return list(segments[-needed:])


def select_range(
    segments: Sequence[SegmentFile],
    start_seconds: float,
    end_seconds: float,
    segment_seconds: int = SEGMENT_SECONDS,
) -> tuple[list[SegmentFile], Optional[TrimSpec]]:
    """Pick the segments covering ``[start_seconds, end_seconds)`` of the buffer.

    Offsets count from the start of the oldest available segment.

    Returns:
        The covering segments and the trim needed to cut them down exactly,
        or None when the range falls on segment boundaries.

    Raises:
        InvalidInputError: If the range is empty or exceeds the buffer.
    """
    available_seconds = len(segments) * segment_seconds
    start_index = math.floor(start_seconds / segment_seconds)
    end_index = math.ceil(end_seconds / segment_seconds)

    if start_seconds < 0:
        raise InvalidInputError("Start time must be >= 0")
    if start_index >= len(segments):
        raise InvalidInputError(
            f"Start time {start_seconds}s exceeds available buffer ({available_seconds}s)"
        )
    if end_index > len(segments):
        raise InvalidInputError(
            f"End time {end_seconds}s exceeds available buffer ({available_seconds}s)"
        )
    if start_seconds >= end_seconds:
        raise InvalidInputError("Start time must be before end time")

    selected = list(segments[start_index:end_index])
    start_offset = start_seconds - start_index * segment_seconds
    exact_duration = end_seconds - start_seconds

    trim = None
    if start_offset > 0 or exact_duration != len(selected) * segment_seconds:
        trim = TrimSpec(start_offset, exact_duration)
        log.info(
            "segment_range_trimmed",
            start_offset=start_offset,
            duration=exact_duration,
        )

    return selected, trim
