"""Clip duration and size estimates."""

import json
import math
import subprocess

from clipstitch.errors import ServiceError
from clipstitch.models import PathLike
from clipstitch.utils.logging import get_logger

log = get_logger(__name__)

SEGMENT_SECONDS = 10
BITRATE_KBPS = 6000  # H.264 720p30
PROBE_TIMEOUT_SECONDS = 30.0


def estimated_duration(segment_count: int, per_segment_seconds: float = SEGMENT_SECONDS) -> float:
    """Total seconds for ``segment_count`` fixed-length segments."""
    return segment_count * per_segment_seconds


def estimated_file_size(duration_seconds: float, bitrate_kbps: float = BITRATE_KBPS) -> int:
    """Bytes a clip of this duration takes at a constant bitrate."""
    return math.ceil(bitrate_kbps * 1000 * duration_seconds / 8)


def probed_duration(
    path: PathLike,
    ffprobe_path: str = "ffprobe",
    timeout_seconds: float = PROBE_TIMEOUT_SECONDS,
) -> float:
    """Read the container duration with ffprobe.

    Unlike the pipeline's cache probes, failures here are raised: the
    caller wants the real duration, not a best effort.

    Returns:
        Duration in seconds, or 0.0 if the container does not report one.

    Raises:
        ServiceError: If ffprobe cannot run or its output cannot be parsed.
    """
    cmd = [
        ffprobe_path,
        "-v", "error",
        "-show_format",
        "-of", "json",
        str(path),
    ]

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired as e:
        log.error("ffprobe_timeout", path=str(path), timeout_seconds=timeout_seconds)
        raise ServiceError(f"FFprobe failed: timed out after {timeout_seconds:g}s") from e
    except OSError as e:
        log.error("ffprobe_failed", path=str(path), error=str(e))
        raise ServiceError(f"FFprobe failed: {e}") from e

    if result.returncode != 0:
        stderr = result.stderr.decode(errors="replace")[-500:] if result.stderr else ""
        log.error("ffprobe_failed", path=str(path), returncode=result.returncode, stderr=stderr)
        raise ServiceError(f"FFprobe failed: {stderr.strip() or result.returncode}")

    try:
        metadata = json.loads(result.stdout or b"{}")
    except ValueError as e:
        log.error("ffprobe_bad_output", path=str(path), error=str(e))
        raise ServiceError(f"FFprobe failed: unreadable output ({e})") from e

    raw = (metadata.get("format") or {}).get("duration")
    try:
        duration = float(raw) if raw is not None else 0.0
    except (TypeError, ValueError):
        # ffprobe reports "N/A" for streams without a known length
        duration = 0.0

    log.debug("video_duration_probed", path=str(path), duration=duration)
    return duration
