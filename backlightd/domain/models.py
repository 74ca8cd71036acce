from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class DaemonMode(str, Enum):
    BOOT = "boot"
    INTERVAL = "interval"
    REALTIME = "realtime"


@dataclass(frozen=True)
class Sample:
    ts_utc: datetime
    raw_luma: float  # 0 = black, 1 = white


@dataclass(frozen=True)
class CalibrationProfile:
    ambient_luma_min: float
    ambient_luma_max: float
    screen_brightness_min: int
    screen_brightness_max: int
    calibrated: bool = False

    def problems(self, hardware_max: Optional[int] = None) -> list[str]:
        out: list[str] = []
        if not 0.0 <= self.ambient_luma_min < self.ambient_luma_max <= 1.0:
            out.append(
                f"ambient_luma_min ({self.ambient_luma_min}) must be below "
                f"ambient_luma_max ({self.ambient_luma_max}) within [0, 1]"
            )
        if not 0 <= self.screen_brightness_min < self.screen_brightness_max:
            out.append(
                f"screen_brightness_min ({self.screen_brightness_min}) must be below "
                f"screen_brightness_max ({self.screen_brightness_max})"
            )
        if hardware_max is not None and self.screen_brightness_max > hardware_max:
            out.append(
                f"screen_brightness_max ({self.screen_brightness_max}) exceeds "
                f"hardware maximum ({hardware_max})"
            )
        return out

    def is_valid(self, hardware_max: Optional[int] = None) -> bool:
        return not self.problems(hardware_max)

    def to_store(self) -> dict[str, str]:
        return {
            "ambient_luma_min": repr(float(self.ambient_luma_min)),
            "ambient_luma_max": repr(float(self.ambient_luma_max)),
            "screen_brightness_min": str(int(self.screen_brightness_min)),
            "screen_brightness_max": str(int(self.screen_brightness_max)),
            "calibrated": "1" if self.calibrated else "0",
        }

    @classmethod
    def from_store(cls, values: dict[str, str]) -> Optional["CalibrationProfile"]:
        try:
            return cls(
                ambient_luma_min=float(values["ambient_luma_min"]),
                ambient_luma_max=float(values["ambient_luma_max"]),
                screen_brightness_min=int(values["screen_brightness_min"]),
                screen_brightness_max=int(values["screen_brightness_max"]),
                calibrated=values.get("calibrated") == "1",
            )
        except (KeyError, ValueError):
            return None


@dataclass(frozen=True)
class CircadianCurve:
    enabled: bool = False
    day_boost: float = 1.05
    night_dim: float = 0.95
    day_start_hour: int = 7
    night_start_hour: int = 20


@dataclass(frozen=True)
class DaemonConfig:
    mode: DaemonMode = DaemonMode.REALTIME
    run_duration: float = 60.0
    pause_interval: float = 30.0
    interval_boot: bool = False

    @property
    def effective_mode(self) -> DaemonMode:
        if self.interval_boot:
            return DaemonMode.INTERVAL
        return self.mode


@dataclass(frozen=True)
class SamplerConfig:
    camera_index: int = 0
    width: int = 640
    height: int = 480
    warmup_frames: int = 30
    half_precision: bool = False
    read_timeout_s: float = 2.0
    max_retries: int = 5
    capture_interval_s: float = 0.5
    error_throttle_s: float = 10.0


@dataclass(frozen=True)
class TransitionConfig:
    step_interval_s: float = 0.05
    step_divisor: int = 20
    step_max: int = 100
    max_failures: int = 5


@dataclass(frozen=True)
class StatusConfig:
    interval_s: float = 30.0
    min_brightness_change: int = 10
    fast_interval_s: float = 1.0


@dataclass(frozen=True)
class ControlDecision:
    ts_utc: datetime
    raw_luma: float
    smoothed_luma: float
    multiplier: float
    target: Optional[int]  # None = keep the current target
    reason: str


@dataclass(frozen=True)
class StatusEvent:
    ts_utc: datetime
    smoothed_luma: float
    target_brightness: int
    actual_brightness: Optional[int]
