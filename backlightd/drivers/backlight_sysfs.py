from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..core.errors import ActuatorPermissionDenied, ActuatorUnreadable, ActuatorWriteFailed

logger = logging.getLogger(__name__)

SYSFS_BACKLIGHT_ROOT = Path("/sys/class/backlight")


def find_backlight_directory(root: Path = SYSFS_BACKLIGHT_ROOT) -> Path:
    """First backlight device under ``root`` exposing brightness and max_brightness."""
    try:
        entries = sorted(root.iterdir())
    except OSError as e:
        raise ActuatorUnreadable(f"Cannot list {root}: {e}") from e
    for entry in entries:
        if (entry / "brightness").exists() and (entry / "max_brightness").exists():
            return entry
    raise ActuatorUnreadable(f"No backlight device found under {root}")


def _read_int(path: Path) -> int:
    try:
        return int(path.read_text().strip())
    except PermissionError as e:
        raise ActuatorUnreadable(f"Permission denied reading {path}") from e
    except (OSError, ValueError) as e:
        raise ActuatorUnreadable(f"Cannot read {path}: {e}") from e


class SysfsBacklight:
    """Backlight driver for the kernel's /sys/class/backlight interface."""

    def __init__(self, directory: Optional[Path | str] = None, root: Path = SYSFS_BACKLIGHT_ROOT) -> None:
        self.directory = Path(directory) if directory else find_backlight_directory(root)
        self.backlight_id = self.directory.name
        self._brightness_path = self.directory / "brightness"
        self._max_path = self.directory / "max_brightness"
        actual = self.directory / "actual_brightness"
        self._actual_path = actual if actual.exists() else None
        self._max: Optional[int] = None

    def max_brightness(self) -> int:
        if self._max is None:
            self._max = _read_int(self._max_path)
            logger.info("Backlight %s max_brightness=%d", self.backlight_id, self._max)
        return self._max

    def current(self) -> int:
        # actual_brightness reflects the hardware, brightness the last request
        return _read_int(self._actual_path or self._brightness_path)

    def write(self, value: int) -> None:
        v = min(max(int(value), 0), self.max_brightness())
        try:
            self._brightness_path.write_text(str(v))
        except PermissionError as e:
            raise ActuatorPermissionDenied(str(self._brightness_path)) from e
        except OSError as e:
            raise ActuatorWriteFailed(f"Cannot write {v} to {self._brightness_path}: {e}") from e

    async def read_brightness(self) -> int:
        return await asyncio.get_running_loop().run_in_executor(None, self.current)

    async def write_brightness(self, value: int) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self.write, value)
