from __future__ import annotations

import logging
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Literal, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigParseError
from ..domain.models import (
    CalibrationProfile,
    CircadianCurve,
    DaemonConfig,
    DaemonMode,
    SamplerConfig,
    StatusConfig,
    TransitionConfig,
)

logger = logging.getLogger(__name__)

# Highest precedence first
DEFAULT_CONFIG_PATHS: tuple[Path, ...] = (
    Path("~/.config/backlightd/config.toml"),
    Path("/etc/backlightd/config.toml"),
    Path("config.toml"),
)

CALIBRATION_KEYS = (
    "ambient_luma_min",
    "ambient_luma_max",
    "screen_brightness_min",
    "screen_brightness_max",
    "calibrated",
)


class LogLevel(str, Enum):
    OFF = "off"
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERBOSE = "verbose"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BACKLIGHTD_", extra="ignore", frozen=True)

    # Daemon
    mode: DaemonMode = DaemonMode.REALTIME
    run_duration: float = Field(default=60.0, gt=0)
    pause_interval: float = Field(default=30.0, ge=0)
    interval_boot: bool = False  # True forces interval mode

    # Devices: "camera"/"sysfs" for real hardware, "sim" for development
    sensor: Literal["camera", "sim"] = "camera"
    actuator: Literal["sysfs", "sim"] = "sysfs"
    backlight_directory: Optional[str] = None  # None = first entry of /sys/class/backlight

    # Camera
    camera_index: int = Field(default=0, ge=0)
    camera_resolution: tuple[int, int] = (640, 480)
    camera_warmup_frames: int = Field(default=30, ge=0)
    camera_read_timeout_seconds: float = Field(default=2.0, gt=0)
    camera_max_retries: int = Field(default=5, ge=0)
    half_precision: bool = False

    # Calibration profile
    screen_brightness_min: int = Field(default=1, ge=1)  # never fully dark
    screen_brightness_max: int = Field(default=255, ge=1)
    ambient_luma_min: float = Field(default=0.0, ge=0.0, le=1.0)
    ambient_luma_max: float = Field(default=1.0, ge=0.0, le=1.0)
    calibrated: bool = False
    calibration_window_seconds: float = Field(default=10.0, gt=0)
    calibration_min_contrast: float = Field(default=0.05, gt=0, le=1.0)

    # Sampling / smoothing
    ambient_smoothing_strength: float = Field(default=0.15, gt=0, le=1.0)
    ambient_min_luma_delta: float = Field(default=0.0, ge=0.0, le=1.0)
    capture_interval_ms: int = Field(default=500, ge=10)

    # Transitions
    brightness_step_interval_ms: int = Field(default=50, ge=1)
    brightness_step_divisor: int = Field(default=20, ge=1)
    brightness_step_max: int = Field(default=100, ge=1)
    actuator_max_failures: int = Field(default=5, ge=1)

    # Circadian
    circadian_enabled: bool = False
    circadian_day_boost: float = Field(default=1.05, ge=0)
    circadian_night_dim: float = Field(default=0.95, ge=0)
    circadian_day_start_hour: int = Field(default=7, ge=0, le=23)
    circadian_night_start_hour: int = Field(default=20, ge=0, le=23)

    # Logging / status
    logging: LogLevel = LogLevel.MEDIUM
    log_directory: Optional[str] = None
    error_throttle_seconds: float = Field(default=10.0, ge=0)
    status_interval_seconds: float = Field(default=30.0, gt=0)
    status_min_brightness_change: int = Field(default=10, ge=0)
    status_fast_interval_seconds: float = Field(default=1.0, ge=0)

    # Storage
    state_path: str = "~/.local/state/backlightd/state.db"

    @field_validator("camera_resolution")
    @classmethod
    def _positive_resolution(cls, v: tuple[int, int]) -> tuple[int, int]:
        if v[0] <= 0 or v[1] <= 0:
            raise ValueError("camera_resolution must be a positive (width, height) pair")
        return v

    def calibration_profile(self) -> CalibrationProfile:
        return CalibrationProfile(
            ambient_luma_min=self.ambient_luma_min,
            ambient_luma_max=self.ambient_luma_max,
            screen_brightness_min=self.screen_brightness_min,
            screen_brightness_max=self.screen_brightness_max,
            calibrated=self.calibrated,
        )

    def with_profile(self, profile: CalibrationProfile) -> "Settings":
        return self.model_copy(
            update={
                "ambient_luma_min": profile.ambient_luma_min,
                "ambient_luma_max": profile.ambient_luma_max,
                "screen_brightness_min": profile.screen_brightness_min,
                "screen_brightness_max": profile.screen_brightness_max,
                "calibrated": profile.calibrated,
            }
        )

    def daemon_config(self) -> DaemonConfig:
        return DaemonConfig(
            mode=self.mode,
            run_duration=self.run_duration,
            pause_interval=self.pause_interval,
            interval_boot=self.interval_boot,
        )

    def circadian_curve(self) -> CircadianCurve:
        return CircadianCurve(
            enabled=self.circadian_enabled,
            day_boost=self.circadian_day_boost,
            night_dim=self.circadian_night_dim,
            day_start_hour=self.circadian_day_start_hour,
            night_start_hour=self.circadian_night_start_hour,
        )

    def sampler_config(self) -> SamplerConfig:
        width, height = self.camera_resolution
        return SamplerConfig(
            camera_index=self.camera_index,
            width=width,
            height=height,
            warmup_frames=self.camera_warmup_frames,
            half_precision=self.half_precision,
            read_timeout_s=self.camera_read_timeout_seconds,
            max_retries=self.camera_max_retries,
            capture_interval_s=self.capture_interval_ms / 1000.0,
            error_throttle_s=self.error_throttle_seconds,
        )

    def transition_config(self) -> TransitionConfig:
        return TransitionConfig(
            step_interval_s=self.brightness_step_interval_ms / 1000.0,
            step_divisor=self.brightness_step_divisor,
            step_max=self.brightness_step_max,
            max_failures=self.actuator_max_failures,
        )

    def status_config(self) -> StatusConfig:
        return StatusConfig(
            interval_s=self.status_interval_seconds,
            min_brightness_change=self.status_min_brightness_change,
            fast_interval_s=self.status_fast_interval_seconds,
        )


def read_config_files(paths: Iterable[Path | str]) -> dict[str, Any]:
    """Merge TOML documents; ``paths`` is ordered highest precedence first."""
    merged: dict[str, Any] = {}
    for path in reversed([Path(p).expanduser() for p in paths]):
        if not path.is_file():
            continue
        try:
            with path.open("rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("Ignoring config file %s: %s", path, e)
            continue
        logger.info("Loaded config %s (%d keys)", path, len(data))
        merged.update(data)
    return merged


def build_settings(data: dict[str, Any]) -> Settings:
    """Validate ``data``; offending keys fall back to their defaults."""
    data = dict(data)
    for key in sorted(set(data) - set(Settings.model_fields)):
        logger.debug("Ignoring unknown config key %r", key)
        data.pop(key)

    while True:
        try:
            settings = Settings(**data)
            break
        except ValidationError as e:
            bad = {str(err["loc"][0]) for err in e.errors() if err.get("loc")} & set(data)
            if not bad:
                raise ConfigParseError(str(e)) from e
            for key in sorted(bad):
                logger.warning("Invalid value %r for %r, using default", data.pop(key), key)

    problems = settings.calibration_profile().problems()
    if problems:
        for p in problems:
            logger.warning("Calibration config rejected: %s", p)
        settings = settings.model_copy(
            update={k: Settings.model_fields[k].default for k in CALIBRATION_KEYS}
        )
    return settings


def load_settings(paths: Optional[Iterable[Path | str]] = None) -> Settings:
    return build_settings(read_config_files(DEFAULT_CONFIG_PATHS if paths is None else paths))
