from __future__ import annotations
from datetime import datetime
from typing import Optional
from .models import CircadianCurve
from ..core.timeutil import now_local


class CircadianBias:
    """Time-of-day multiplier applied to the mapped brightness."""

    def __init__(self, curve: CircadianCurve) -> None:
        self._curve = curve

    @property
    def curve(self) -> CircadianCurve:
        return self._curve

    def is_day(self, hour: int) -> bool:
        c = self._curve
        hour %= 24
        # Handle day windows wrapping midnight (e.g. 18 -> 04); equal hours = no day
        if c.day_start_hour <= c.night_start_hour:
            return c.day_start_hour <= hour < c.night_start_hour
        return hour >= c.day_start_hour or hour < c.night_start_hour

    def bias(self, hour: int) -> float:
        if not self._curve.enabled:
            return 1.0
        return self._curve.day_boost if self.is_day(hour) else self._curve.night_dim

    def bias_at(self, local_dt: Optional[datetime] = None) -> float:
        if local_dt is None:
            local_dt = now_local()
        return self.bias(local_dt.hour)
