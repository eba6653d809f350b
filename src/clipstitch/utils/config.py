"""Configuration loading and validation."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class AppConfig:
    """Application configuration."""

    name: str = "clipstitch"
    log_level: str = "INFO"


@dataclass
class ConcatConfig:
    """Concatenation pipeline configuration."""

    temp_root: str = "/tmp"  # per-request working dirs are created below this
    max_attempts: int = 3
    retry_delay_seconds: float = 2.0
    timeout_seconds: float = 600.0
    max_concurrent_jobs: int = 0  # 0 = unbounded
    probe_workers: int = 8


@dataclass
class FfmpegConfig:
    """External transcoding engine configuration."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    probe_timeout_seconds: float = 30.0


@dataclass
class SegmentsConfig:
    """Shape of the segments written by the upstream recorder."""

    segment_seconds: int = 10
    default_bitrate_kbps: int = 6000  # H.264 720p30


@dataclass
class Config:
    """Root configuration object."""

    app: AppConfig = field(default_factory=AppConfig)
    concat: ConcatConfig = field(default_factory=ConcatConfig)
    ffmpeg: FfmpegConfig = field(default_factory=FfmpegConfig)
    segments: SegmentsConfig = field(default_factory=SegmentsConfig)


def _dict_to_dataclass(cls: type, data: dict[str, Any]) -> Any:
    """Recursively convert a dictionary to a dataclass instance."""
    if data is None:
        return cls()

    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs = {}

    for key, value in data.items():
        if key not in field_types:
            continue

        field_type = field_types[key]

        # Handle nested dataclasses
        if hasattr(field_type, "__dataclass_fields__") and isinstance(value, dict):
            kwargs[key] = _dict_to_dataclass(field_type, value)
        else:
            kwargs[key] = value

    return cls(**kwargs)


def validate_config(config: Config) -> None:
    """Reject values the pipeline cannot run with.

    Raises:
        ValueError: If a setting is out of range.
    """
    concat = config.concat
    if concat.max_attempts < 1:
        raise ValueError(f"concat.max_attempts must be >= 1, got {concat.max_attempts}")
    if concat.retry_delay_seconds < 0:
        raise ValueError("concat.retry_delay_seconds must be >= 0")
    if concat.timeout_seconds <= 0:
        raise ValueError("concat.timeout_seconds must be > 0")
    if concat.max_concurrent_jobs < 0:
        raise ValueError("concat.max_concurrent_jobs must be >= 0")
    if concat.probe_workers < 1:
        raise ValueError("concat.probe_workers must be >= 1")
    if config.segments.segment_seconds <= 0:
        raise ValueError("segments.segment_seconds must be > 0")


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to config file. If None, searches default locations.

    Returns:
        Config object with all settings.
    """
    search_paths = [
        Path(config_path) if config_path else None,
        Path("config/config.yaml"),
        Path("/etc/clipstitch/config.yaml"),
        Path.home() / ".config" / "clipstitch" / "config.yaml",
    ]

    config_file = None
    for path in search_paths:
        if path and path.exists():
            config_file = path
            break

    if config_file is None:
        # Return defaults if no config file found
        return Config()

    with open(config_file) as f:
        data = yaml.safe_load(f) or {}

    config = _dict_to_dataclass(Config, data)
    validate_config(config)
    return config
