from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..core.errors import ActuatorUnreadable, CalibrationError, CalibrationInterrupted, InsufficientContrast
from ..domain.interfaces import Backlight, Repository
from ..domain.models import CalibrationProfile
from .sampler import Sampler, until_stopped

logger = logging.getLogger(__name__)

Prompt = Callable[[str], Awaitable[None]]


class Calibrator:
    """Measures the usable ambient luma range and the backlight range.

    Both measurements must succeed before anything is written; the profile is then
    saved in a single transaction, replacing any previous one. Setting
    ``stop`` abandons calibration without saving.
    """

    def __init__(
        self,
        sampler: Sampler,
        backlight: Backlight,
        repo: Repository,
        *,
        window_s: float = 10.0,
        min_contrast: float = 0.05,
        brightness_floor: int = 1,
        sample_interval_s: float = 0.5,
        prompt: Optional[Prompt] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        self._sampler = sampler
        self._backlight = backlight
        self._repo = repo
        self._window_s = window_s
        self._min_contrast = min_contrast
        self._floor = max(1, brightness_floor)
        self._sample_interval_s = sample_interval_s
        self._prompt = prompt
        self._stop = stop

    async def calibrate(self) -> CalibrationProfile:
        logger.info("Calibration started")
        async with self._sampler:
            completed, luma_range = await until_stopped(self.measure_ambient(), self._stop)
        if not completed:
            raise CalibrationInterrupted("Calibration interrupted; stored profile left unchanged")
        luma_min, luma_max = luma_range
        hardware_max = self.read_actuator_range()

        if self._floor >= hardware_max:
            raise CalibrationError(
                f"Brightness floor {self._floor} is not below hardware maximum {hardware_max}"
            )

        profile = CalibrationProfile(
            ambient_luma_min=luma_min,
            ambient_luma_max=luma_max,
            screen_brightness_min=self._floor,
            screen_brightness_max=hardware_max,
            calibrated=True,
        )
        if self._stop is not None and self._stop.is_set():
            raise CalibrationInterrupted("Calibration interrupted; stored profile left unchanged")
        await self._repo.save_calibration(profile)
        logger.info(
            "Calibration saved: luma %.3f..%.3f brightness %d..%d",
            luma_min, luma_max, self._floor, hardware_max,
        )
        return profile

    async def _observe(self, seconds: float) -> list[float]:
        loop = asyncio.get_running_loop()
        end = loop.time() + seconds
        values: list[float] = []
        while True:
            sample = await self._sampler.capture()
            values.append(sample.raw_luma)
            logger.debug("Calibration sample %.4f", sample.raw_luma)
            remaining = end - loop.time()
            if remaining <= 0:
                return values
            await asyncio.sleep(min(self._sample_interval_s, remaining))

    async def measure_ambient(self) -> tuple[float, float]:
        if self._prompt is not None:
            half = self._window_s / 2.0
            await self._prompt("Step 1/2: cover the camera or dim the room, then press Enter.")
            values = await self._observe(half)
            await self._prompt("Step 2/2: light the room brightly or face a bright area, then press Enter.")
            values += await self._observe(half)
        else:
            logger.info(
                "Observing ambient light for %.0fs; vary the lighting (cover the camera, then expose it)",
                self._window_s,
            )
            values = await self._observe(self._window_s)

        luma_min, luma_max = min(values), max(values)
        logger.info("Observed luma %.4f..%.4f over %d samples", luma_min, luma_max, len(values))
        if luma_max - luma_min < self._min_contrast:
            raise InsufficientContrast(luma_min, luma_max, self._min_contrast)
        return luma_min, luma_max

    def read_actuator_range(self) -> int:
        try:
            hardware_max = int(self._backlight.max_brightness())
        except ActuatorUnreadable:
            raise
        except (OSError, ValueError) as e:
            raise ActuatorUnreadable(f"Cannot query {self._backlight.backlight_id}: {e}") from e
        if hardware_max <= 0:
            raise ActuatorUnreadable(f"{self._backlight.backlight_id} reports max brightness {hardware_max}")
        logger.info("Backlight %s range up to %d", self._backlight.backlight_id, hardware_max)
        return hardware_max
