"""Exception taxonomy for the concatenation pipeline."""

from typing import Optional


class ClipstitchError(Exception):
    """Base class for every error raised to clipstitch callers."""


class InvalidInputError(ClipstitchError, ValueError):
    """Request rejected before any filesystem work was done."""


class ServiceError(ClipstitchError):
    """A helper that reports ground truth to the caller failed (e.g. ffprobe)."""


class TranscodeError(ClipstitchError):
    """ffmpeg did not produce the clip.

    Attributes:
        diagnostic: Tail of ffmpeg's stderr, the only place its failure
            reasons show up.
        returncode: Process exit status, or None if it never exited normally.
    """

    def __init__(
        self,
        message: str,
        diagnostic: str = "",
        returncode: Optional[int] = None,
    ):
        self.diagnostic = diagnostic
        self.returncode = returncode
        text = message if not diagnostic else f"{message}\n{diagnostic}"
        super().__init__(text)


class RetryableTranscodeError(TranscodeError):
    """Failure that looks like a segment not yet visible on shared storage."""


class FatalTranscodeError(TranscodeError):
    """Any other engine failure. Never retried."""


class TranscodeTimeoutError(TranscodeError, TimeoutError):
    """The watchdog killed a run that exceeded its ceiling. Never retried."""


class ProbeError(ClipstitchError):
    """A cache-warming stat failed. ``CacheProber.refresh`` logs and drops it."""


class CleanupWarning(UserWarning):
    """Working directory removal failed. Logged only."""
