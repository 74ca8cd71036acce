from __future__ import annotations
from typing import Optional


class Ema:
    """Exponential moving average of ambient luma.

    ``alpha`` in (0, 1]: small values react slowly and resist flicker,
    large values track quickly. The first update seeds the estimate.
    """

    def __init__(self, alpha: float, initial: Optional[float] = None) -> None:
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"smoothing strength must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self._value = initial

    @property
    def value(self) -> Optional[float]:
        return self._value

    def update(self, raw: float) -> float:
        if self._value is None:
            self._value = raw
        else:
            self._value = self._value * (1.0 - self.alpha) + raw * self.alpha
        return self._value
