from __future__ import annotations
from typing import Protocol, Optional, runtime_checkable
from .models import CalibrationProfile, StatusEvent


@runtime_checkable
class Backlight(Protocol):
    backlight_id: str

    def max_brightness(self) -> int:
        ...

    async def read_brightness(self) -> int:
        ...

    async def write_brightness(self, value: int) -> None:
        ...


@runtime_checkable
class Repository(Protocol):
    async def init(self) -> None:
        ...

    async def load_calibration(self) -> Optional[CalibrationProfile]:
        ...

    async def save_calibration(self, profile: CalibrationProfile) -> None:
        ...

    async def insert_status(self, event: StatusEvent) -> None:
        ...
