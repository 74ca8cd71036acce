from __future__ import annotations
import logging

from ..core.errors import ActuatorWriteFailed

logger = logging.getLogger(__name__)


class SimulatedBacklight:
    backlight_id = "backlight_sim"

    def __init__(self, value: int = 100, maximum: int = 937) -> None:
        self._value = value
        self._max = maximum
        self._failures_pending = 0
        self.writes: list[int] = []

    def max_brightness(self) -> int:
        return self._max

    def set_external(self, value: int) -> None:
        """Change the value behind the daemon's back, like a hotkey would."""
        self._value = value

    def fail_next(self, count: int = 1) -> None:
        self._failures_pending += count

    async def read_brightness(self) -> int:
        return self._value

    async def write_brightness(self, value: int) -> None:
        if self._failures_pending > 0:
            self._failures_pending -= 1
            raise ActuatorWriteFailed("Simulated write failure")
        self._value = min(max(int(value), 0), self._max)
        self.writes.append(self._value)
        logger.debug("BACKLIGHT set=%d", self._value)
