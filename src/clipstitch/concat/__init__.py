"""Segment concatenation pipeline built on ffmpeg's concat demuxer."""

from clipstitch.concat.descriptor import build_concat_descriptor
from clipstitch.concat.estimators import (
    estimated_duration,
    estimated_file_size,
    probed_duration,
)
from clipstitch.concat.invoker import TranscodeInvoker
from clipstitch.concat.pipeline import ConcatPipeline
from clipstitch.concat.prober import CacheProber
from clipstitch.concat.retry import RetryCoordinator, classify_failure

__all__ = [
    "CacheProber",
    "ConcatPipeline",
    "RetryCoordinator",
    "TranscodeInvoker",
    "build_concat_descriptor",
    "classify_failure",
    "estimated_duration",
    "estimated_file_size",
    "probed_duration",
]
