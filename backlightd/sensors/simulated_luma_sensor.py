from __future__ import annotations

import math
import random
import time
from dataclasses import dataclass
from threading import Lock
from typing import Iterable, Optional

from .base import LumaSensor
from ..core.errors import CaptureFailed, DeviceUnavailable


@dataclass
class PatternConfig:
    type: str = "sine"     # sine|step|ramp|random
    baseline: float = 0.4
    amplitude: float = 0.3
    period_s: float = 600
    noise: float = 0.01

    step_low: float = 0.1
    step_high: float = 0.8
    step_period_s: float = 120

    ramp_min: float = 0.05
    ramp_max: float = 0.9
    ramp_period_s: float = 600


class SimulatedLumaSensor(LumaSensor):
    def __init__(self, sensor_id: str = "luma_sim", luma: float = 0.4):
        self._sensor_id = sensor_id
        self._lock = Lock()
        self._open = False
        self._available = True
        self._mode = "manual"   # manual|pattern|script
        self._manual_luma = float(luma)
        self._pattern = PatternConfig()
        self._script: list[float] = []
        self._failures_pending = 0
        self.reads = 0
        self.opens = 0

    @property
    def sensor_id(self) -> str:
        return self._sensor_id

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        with self._lock:
            if not self._available:
                raise DeviceUnavailable("Simulated sensor unavailable")
            if not self._open:
                self._open = True
                self.opens += 1

    def close(self) -> None:
        with self._lock:
            self._open = False

    def set_available(self, available: bool) -> None:
        with self._lock:
            self._available = available
            if not available:
                self._open = False

    def set_manual(self, luma: float) -> None:
        with self._lock:
            self._mode = "manual"
            self._manual_luma = float(luma)

    def set_pattern(self, cfg: PatternConfig) -> None:
        with self._lock:
            self._mode = "pattern"
            self._pattern = cfg

    def set_script(self, values: Iterable[float]) -> None:
        """Return ``values`` in order, then keep repeating the last one."""
        with self._lock:
            self._mode = "script"
            self._script = [float(v) for v in values]

    def fail_next(self, count: int = 1) -> None:
        with self._lock:
            self._failures_pending += count

    def read_luma(self, half_precision: bool = False) -> float:
        with self._lock:
            if not self._open:
                raise DeviceUnavailable("Simulated sensor is not open")
            if self._failures_pending > 0:
                self._failures_pending -= 1
                raise CaptureFailed("Simulated capture failure")
            self.reads += 1

            if self._mode == "manual":
                return self._manual_luma

            if self._mode == "script":
                if len(self._script) > 1:
                    return self._script.pop(0)
                return self._script[0] if self._script else self._manual_luma

            cfg = self._pattern

        return _pattern_value(cfg, time.time())


def _pattern_value(cfg: PatternConfig, t: float, rng: Optional[random.Random] = None) -> float:
    rng = rng or random
    if cfg.type == "sine":
        phase = (t % cfg.period_s) / cfg.period_s * 2.0 * math.pi
        v = cfg.baseline + cfg.amplitude * math.sin(phase)

    elif cfg.type == "step":
        half = cfg.step_period_s / 2.0
        v = cfg.step_high if (t % cfg.step_period_s) < half else cfg.step_low

    elif cfg.type == "ramp":
        frac = (t % cfg.ramp_period_s) / cfg.ramp_period_s
        v = cfg.ramp_min + (cfg.ramp_max - cfg.ramp_min) * frac

    elif cfg.type == "random":
        v = cfg.baseline + rng.uniform(-cfg.amplitude, cfg.amplitude)

    else:
        v = cfg.baseline

    if cfg.noise > 0:
        v += rng.uniform(-cfg.noise, cfg.noise)

    return float(min(max(v, 0.0), 1.0))
