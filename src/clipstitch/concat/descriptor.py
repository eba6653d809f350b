"""Concat demuxer descriptor (``concat.txt``) generation."""

from typing import Iterable

from clipstitch.models import PathLike


def quote_concat_path(path: PathLike) -> str:
    """Quote a path for the concat demuxer.

    The demuxer has no escape inside single quotes, so an embedded quote
    closes the string, is escaped, and reopens it.
    """
    return "'" + str(path).replace("'", "'\\''") + "'"


def build_concat_descriptor(segments: Iterable[PathLike]) -> str:
    """Return one ``file '<path>'`` line per segment, in the order given.

    Example:
        >>> build_concat_descriptor(["/out/seg1.ts", "/out/seg2.ts"])
        "file '/out/seg1.ts'\\nfile '/out/seg2.ts'"
    """
    return "\n".join(f"file {quote_concat_path(segment)}" for segment in segments)
