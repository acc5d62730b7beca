"""Configuration management using Pydantic and YAML."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from sfxprint.fingerprint import LandmarkProfile, TargetZone


class TargetZoneConfig(BaseModel):
    """Allowed anchor -> target offsets, bounds inclusive."""

    min_dt: int = Field(ge=1)
    max_dt: int = Field(ge=1)
    min_df: int = -30
    max_df: int = 30

    @model_validator(mode="after")
    def check_bounds(self) -> "TargetZoneConfig":
        if self.min_dt > self.max_dt or self.min_df > self.max_df:
            raise ValueError("Target zone bounds are inverted")
        return self


class LandmarkProfileConfig(BaseModel):
    """Landmark picking profile."""

    min_bin: int = Field(ge=0, default=30)
    max_bin: int = Field(ge=0, default=300)
    time_radius: int = Field(ge=1, default=3)
    freq_radius: int = Field(ge=1, default=3)
    amplitude_floor: float = Field(ge=0, default=0.01)
    points_per_second: float = Field(gt=0, default=20.0)
    target_zones: list[TargetZoneConfig] = Field(
        default_factory=lambda: [
            TargetZoneConfig(min_dt=1, max_dt=3),
            TargetZoneConfig(min_dt=4, max_dt=6),
            TargetZoneConfig(min_dt=7, max_dt=10),
        ]
    )
    max_pairs_per_anchor: int = Field(ge=1, default=5)

    def to_profile(self, name: str) -> LandmarkProfile:
        """Build the immutable profile used by the fingerprinter."""
        return LandmarkProfile(
            name=name,
            min_bin=self.min_bin,
            max_bin=self.max_bin,
            time_radius=self.time_radius,
            freq_radius=self.freq_radius,
            amplitude_floor=self.amplitude_floor,
            points_per_second=self.points_per_second,
            target_zones=tuple(
                TargetZone(z.min_dt, z.max_dt, z.min_df, z.max_df) for z in self.target_zones
            ),
            max_pairs_per_anchor=self.max_pairs_per_anchor,
        )


def _default_profiles() -> dict[str, LandmarkProfileConfig]:
    wide = [
        TargetZoneConfig(min_dt=1, max_dt=3, min_df=-60, max_df=60),
        TargetZoneConfig(min_dt=4, max_dt=6, min_df=-60, max_df=60),
        TargetZoneConfig(min_dt=7, max_dt=10, min_df=-60, max_df=60),
    ]
    return {
        "music": LandmarkProfileConfig(),
        "effects": LandmarkProfileConfig(
            min_bin=10, max_bin=512, points_per_second=30.0, target_zones=wide
        ),
    }


class FingerprintConfig(BaseModel):
    """Fingerprint extraction and matching configuration."""

    sample_rate: int = Field(gt=0, default=8000)
    window_size: int = Field(ge=64, default=1024)
    hop_size: int | None = None
    profile: str = "music"
    profiles: dict[str, LandmarkProfileConfig] = Field(default_factory=_default_profiles)
    min_match_count: int = Field(ge=1, default=5)

    @field_validator("hop_size")
    @classmethod
    def check_hop_size(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError(f"hop_size must be >= 1, got {v}")
        return v

    @model_validator(mode="after")
    def check_profile(self) -> "FingerprintConfig":
        if self.profile not in self.profiles:
            raise ValueError(f"Unknown landmark profile: {self.profile}")
        return self

    def active_profile(self) -> LandmarkProfile:
        return self.profiles[self.profile].to_profile(self.profile)


class ContentHashConfig(BaseModel):
    """Content hash engine configuration."""

    source: str = Field(default="file", pattern="^(file|pcm)$")
    cache_capacity: int = Field(ge=1, default=100)
    workers: int | None = None  # None: CPU count
    queue_size: int = Field(ge=1, default=32)
    lock_timeout: float = Field(gt=0, default=1.0)


class ConverterConfig(BaseModel):
    """External converter (ffmpeg) configuration."""

    ffmpeg_path: str | None = None  # None: look up on PATH
    max_processes: int = Field(ge=1, default=4)
    sample_rate: int = Field(gt=0, default=48000)
    max_duration_seconds: float = Field(gt=0, default=300.0)
    threads: int = Field(ge=1, default=2)
    large_file_threshold: int = Field(ge=0, default=100_000_000)
    ignore_filetypes: bool = False


class DualMonoConfig(BaseModel):
    """Dual-mono detection configuration."""

    epsilon: float = Field(ge=0, default=1e-6)
    fast_tolerance: float = Field(ge=0, default=1e-4)
    fast_step: int = Field(ge=1, default=100)
    fast_threshold_frames: int = Field(ge=0, default=48000 * 600)


class SessionConfig(BaseModel):
    """Search session configuration."""

    find_exact_duplicates: bool = True
    detect_dual_mono: bool = True
    find_subsets: bool = True
    fingerprint_workers: int | None = None  # None: CPU count


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = "sfxdupe.log"


class SfxDupeConfig(BaseModel):
    """Main application configuration."""

    fingerprint: FingerprintConfig = Field(default_factory=FingerprintConfig)
    content_hash: ContentHashConfig = Field(default_factory=ContentHashConfig)
    converter: ConverterConfig = Field(default_factory=ConverterConfig)
    dual_mono: DualMonoConfig = Field(default_factory=DualMonoConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig


def load_config(config_path: Path | None = None) -> SfxDupeConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        SfxDupeConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    if config_path is None:
        possible_paths = [
            Path(__file__).parent.parent.parent / "config" / "config.yaml",
            Path.home() / ".config" / "sfxdupe" / "config.yaml",
            Path.home() / ".sfxdupe" / "config.yaml",
        ]

        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            config_path = possible_paths[0]

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f)

    return SfxDupeConfig(**data)
