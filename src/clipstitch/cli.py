"""Command-line entry point."""

import argparse
import sys
from typing import Optional, Sequence

from clipstitch.concat.estimators import (
    estimated_duration,
    estimated_file_size,
    probed_duration,
)
from clipstitch.concat.pipeline import ConcatPipeline
from clipstitch.errors import ClipstitchError, InvalidInputError
from clipstitch.models import TrimSpec
from clipstitch.segments import list_segments, select_range, select_recent
from clipstitch.storage.local import LocalStorage
from clipstitch.utils.config import Config, load_config
from clipstitch.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipstitch",
        description="Stitch recorded media segments into a single clip",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    concat = sub.add_parser("concat", help="Concatenate segments into OUTPUT")
    concat.add_argument("output", help="Output MP4 path")
    concat.add_argument("segments", nargs="*", help="Segment paths, oldest first")
    concat.add_argument(
        "--from-dir",
        help="Take segments from a recorder session directory instead",
    )
    window = concat.add_mutually_exclusive_group()
    window.add_argument(
        "--minutes",
        type=float,
        help="With --from-dir: the most recent N minutes",
    )
    window.add_argument(
        "--range",
        nargs=2,
        type=float,
        metavar=("START", "END"),
        help="With --from-dir: seconds from the oldest buffered segment",
    )
    concat.add_argument("--trim-start", type=float, help="Seconds to skip")
    concat.add_argument("--trim-duration", type=float, help="Seconds to keep")

    probe = sub.add_parser("probe", help="Print a media file's duration in seconds")
    probe.add_argument("file")

    estimate = sub.add_parser("estimate", help="Estimate clip duration and size")
    estimate.add_argument("--segments", type=int, required=True, help="Segment count")
    estimate.add_argument("--segment-seconds", type=float, default=None)
    estimate.add_argument("--bitrate", type=float, default=None, help="Bitrate in kbps")

    return parser


def _resolve_segments(
    args: argparse.Namespace, config: Config
) -> tuple[list[str], Optional[TrimSpec]]:
    """Work out the segment list and trim for a concat invocation."""
    trim = None
    if args.trim_start is not None or args.trim_duration is not None:
        if args.trim_duration is None:
            raise InvalidInputError("--trim-duration is required with --trim-start")
        trim = TrimSpec(args.trim_start or 0.0, args.trim_duration)

    if not args.from_dir:
        if args.minutes is not None or args.range is not None:
            raise InvalidInputError("--minutes and --range need --from-dir")
        return list(args.segments), trim

    if args.segments:
        raise InvalidInputError("Give either segment paths or --from-dir, not both")

    seconds = config.segments.segment_seconds
    available = list_segments(LocalStorage(), args.from_dir)
    if not available:
        raise InvalidInputError(f"No segments available in {args.from_dir}")

    if args.range is not None:
        if trim is not None:
            raise InvalidInputError("--range already computes the trim")
        selected, trim = select_range(available, args.range[0], args.range[1], seconds)
    elif args.minutes is not None:
        selected = select_recent(available, args.minutes, seconds)
    else:
        selected = available

    log.info(
        "segments_selected",
        selected=len(selected),
        available=len(available),
        estimated_seconds=trim.duration_seconds
        if trim
        else estimated_duration(len(selected), seconds),
    )
    return [str(s.path) for s in selected], trim


def _cmd_concat(args: argparse.Namespace, config: Config) -> int:
    segments, trim = _resolve_segments(args, config)
    pipeline = ConcatPipeline.from_config(config)
    result = pipeline.concatenate(segments, args.output, trim)
    print(result.output_path)
    return 0


def _cmd_probe(args: argparse.Namespace, config: Config) -> int:
    duration = probed_duration(
        args.file,
        ffprobe_path=config.ffmpeg.ffprobe_path,
        timeout_seconds=config.ffmpeg.probe_timeout_seconds,
    )
    print(f"{duration:.3f}")
    return 0


def _cmd_estimate(args: argparse.Namespace, config: Config) -> int:
    segment_seconds = args.segment_seconds
    if segment_seconds is None:
        segment_seconds = config.segments.segment_seconds
    bitrate = args.bitrate
    if bitrate is None:
        bitrate = config.segments.default_bitrate_kbps
    duration = estimated_duration(args.segments, segment_seconds)
    size = estimated_file_size(duration, bitrate)
    print(f"duration_seconds={duration:g} size_bytes={size}")
    return 0


COMMANDS = {
    "concat": _cmd_concat,
    "probe": _cmd_probe,
    "estimate": _cmd_estimate,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the clipstitch command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(args.log_level or config.app.log_level)

    try:
        return COMMANDS[args.command](args, config)
    except ClipstitchError as e:
        log.error("clipstitch_failed", command=args.command, error=str(e))
        return 1
    except OSError as e:
        log.error(
            "clipstitch_storage_failed",
            command=args.command,
            path=e.filename,
            error=str(e),
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
