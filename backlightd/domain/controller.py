from __future__ import annotations
import logging
import math
from datetime import datetime
from typing import Optional
from .models import CalibrationProfile, ControlDecision
from .schedule import CircadianBias
from .smoothing import Ema
from ..core.timeutil import now_local, now_utc

logger = logging.getLogger(__name__)


def map_brightness(smoothed_luma: float, profile: CalibrationProfile, multiplier: float = 1.0) -> int:
    """Luma -> backlight value.

    Clamp to the calibrated ambient range, rescale linearly onto the screen
    range, apply the circadian multiplier, then clamp again and round half up.
    Non-decreasing in ``smoothed_luma`` for a fixed multiplier.
    """
    lo, hi = profile.ambient_luma_min, profile.ambient_luma_max
    b_lo, b_hi = profile.screen_brightness_min, profile.screen_brightness_max

    clamped = min(max(smoothed_luma, lo), hi)
    frac = (clamped - lo) / (hi - lo)
    value = (b_lo + frac * (b_hi - b_lo)) * multiplier
    value = min(max(value, b_lo), b_hi)
    return int(math.floor(value + 0.5))


class BrightnessController:
    """Smoother + circadian bias + mapper, evaluated once per outer tick."""

    def __init__(
        self,
        profile: CalibrationProfile,
        smoother: Ema,
        circadian: CircadianBias,
        min_luma_delta: float = 0.0,
    ) -> None:
        self.profile = profile
        self._smoother = smoother
        self._circadian = circadian
        self._min_luma_delta = min_luma_delta
        self._last_adjusted: Optional[float] = None

    def decide(self, raw_luma: float, local_dt: Optional[datetime] = None) -> ControlDecision:
        ts = now_utc()
        smoothed = self._smoother.update(raw_luma)
        multiplier = self._circadian.bias_at(local_dt or now_local())

        adjusted = smoothed * multiplier
        last = self._last_adjusted
        if last is not None and abs(adjusted - last) < self._min_luma_delta:
            reason = f"Luma change {abs(adjusted - last):.4f} below {self._min_luma_delta:.4f}"
            logger.debug("decide: raw=%.4f smoothed=%.4f NOOP - %s", raw_luma, smoothed, reason)
            return ControlDecision(ts, raw_luma, smoothed, multiplier, None, reason)

        target = map_brightness(smoothed, self.profile, multiplier)
        self._last_adjusted = adjusted

        logger.debug(
            "decide: raw=%.4f smoothed=%.4f bias=%.2f -> target=%d",
            raw_luma, smoothed, multiplier, target,
        )
        return ControlDecision(ts, raw_luma, smoothed, multiplier, target, "Mapped from ambient luma")
