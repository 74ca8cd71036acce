"""
Ambient-light backlight daemon.

Reads ambient light from a webcam, smooths it, maps it onto the display's
backlight range (with an optional time-of-day bias) and walks the backlight
toward the result in small steps.

Usage:
    backlightd                     # run per the configured mode
    backlightd --calibrate         # measure camera and backlight ranges, then exit
    backlightd --simulate -v       # simulated camera and backlight
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from .core.config import Settings, LogLevel, load_settings
from .core.errors import (
    ActuatorUnreadable,
    ActuatorWriteFailed,
    CalibrationError,
    CalibrationInterrupted,
    SamplerError,
)
from .core.log import configure_logging
from .domain.controller import BrightnessController
from .domain.interfaces import Backlight
from .domain.schedule import CircadianBias
from .domain.smoothing import Ema
from .drivers.backlight_sim import SimulatedBacklight
from .drivers.backlight_sysfs import SysfsBacklight
from .sensors.base import LumaSensor
from .sensors.camera import CameraLumaSensor
from .sensors.simulated_luma_sensor import PatternConfig, SimulatedLumaSensor
from .services.calibrator import Calibrator
from .services.control_loop import ControlLoop
from .services.sampler import Sampler
from .services.scheduler import DaemonScheduler
from .services.status import StatusReporter
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CALIBRATION = 2


def build_sensor(settings: Settings) -> LumaSensor:
    if settings.sensor == "sim":
        sensor = SimulatedLumaSensor()
        sensor.set_pattern(PatternConfig(type="random", baseline=0.45, amplitude=0.35))
        return sensor
    width, height = settings.camera_resolution
    return CameraLumaSensor(settings.camera_index, width, height)


def build_backlight(settings: Settings) -> Backlight:
    if settings.actuator == "sim":
        return SimulatedBacklight(value=settings.screen_brightness_min)
    return SysfsBacklight(settings.backlight_directory)


async def prompt_enter(message: str) -> None:
    """Wait for Enter on the terminal; cancellable, unlike a blocking readline."""
    print(message, flush=True)
    loop = asyncio.get_running_loop()
    ready = loop.create_future()
    fd = sys.stdin.fileno()
    loop.add_reader(fd, lambda: ready.done() or ready.set_result(None))
    try:
        await ready
    finally:
        loop.remove_reader(fd)
    sys.stdin.readline()


async def run_calibration(
    settings: Settings,
    sampler: Sampler,
    backlight: Backlight,
    repo: SQLiteRepository,
    stop: Optional[asyncio.Event] = None,
    interactive: bool = False,
) -> Settings:
    calibrator = Calibrator(
        sampler,
        backlight,
        repo,
        window_s=settings.calibration_window_seconds,
        min_contrast=settings.calibration_min_contrast,
        brightness_floor=settings.screen_brightness_min,
        sample_interval_s=settings.capture_interval_ms / 1000.0,
        prompt=prompt_enter if interactive else None,
        stop=stop,
    )
    profile = await calibrator.calibrate()
    return settings.with_profile(profile)


def _fit_to_hardware(settings: Settings, hardware_max: int) -> Settings:
    profile = settings.calibration_profile()
    logger.info("Hardware brightness range: 0 -> %d", hardware_max)
    logger.info(
        "Configured brightness range: %d -> %d",
        profile.screen_brightness_min, profile.screen_brightness_max,
    )
    if profile.screen_brightness_max > hardware_max:
        logger.warning(
            "Configured maximum (%d) exceeds hardware maximum (%d); clamping",
            profile.screen_brightness_max, hardware_max,
        )
        settings = settings.model_copy(update={"screen_brightness_max": hardware_max})
    elif profile.screen_brightness_max < hardware_max - 10:
        logger.info(
            "Configured maximum (%d) is below hardware maximum (%d); run --calibrate to use the full range",
            profile.screen_brightness_max, hardware_max,
        )
    problems = settings.calibration_profile().problems(hardware_max)
    if problems:
        raise CalibrationError("; ".join(problems))
    return settings


async def run_daemon(
    settings: Settings,
    sampler: Sampler,
    backlight: Backlight,
    repo: Optional[SQLiteRepository],
    stop: asyncio.Event,
) -> None:
    settings = _fit_to_hardware(settings, backlight.max_brightness())
    logger.info(
        "Config: smoothing=%.3f circadian=%s min_luma_delta=%.3f status_interval=%.0fs fast_interval=%.2fs",
        settings.ambient_smoothing_strength,
        settings.circadian_enabled,
        settings.ambient_min_luma_delta,
        settings.status_interval_seconds,
        settings.status_fast_interval_seconds,
    )

    controller = BrightnessController(
        profile=settings.calibration_profile(),
        smoother=Ema(settings.ambient_smoothing_strength),
        circadian=CircadianBias(settings.circadian_curve()),
        min_luma_delta=settings.ambient_min_luma_delta,
    )
    loop = ControlLoop(
        sampler=sampler,
        backlight=backlight,
        controller=controller,
        status=StatusReporter(settings.status_config(), repo),
        transition=settings.transition_config(),
        capture_interval_s=settings.capture_interval_ms / 1000.0,
        stop=stop,
    )
    scheduler = DaemonScheduler(settings.daemon_config(), loop.run_phase, stop)
    await scheduler.run()


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_stop, stop, sig)


def _remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.remove_signal_handler(sig)


def _request_stop(stop: asyncio.Event, sig: signal.Signals) -> None:
    if not stop.is_set():
        logger.info("Received %s, shutting down", sig.name)
    stop.set()


async def amain(args: argparse.Namespace) -> int:
    configure_logging()
    settings = load_settings([args.config] if args.config else None)

    overrides: dict = {}
    if args.verbose:
        overrides["logging"] = LogLevel.HIGH
    if args.simulate:
        overrides.update(sensor="sim", actuator="sim")
    if overrides:
        settings = settings.model_copy(update=overrides)
    configure_logging(settings.logging, settings.log_directory)

    repo = SQLiteRepository(settings.state_path)
    await repo.init()
    stored = await repo.load_calibration()
    if stored is not None and stored.is_valid():
        logger.info("Using stored calibration profile from %s", repo.path)
        settings = settings.with_profile(stored)

    sampler: Optional[Sampler] = None
    stop = asyncio.Event()
    _install_signal_handlers(stop)
    try:
        sampler = Sampler(build_sensor(settings), settings.sampler_config(), stop=stop)
        backlight = build_backlight(settings)

        if args.calibrate:
            logger.info("Calibration requested via --calibrate")
            await run_calibration(settings, sampler, backlight, repo, stop, interactive=sys.stdin.isatty())
            return EXIT_OK

        if not settings.calibrated:
            logger.info("No calibration found. Running automatic first-time calibration")
            settings = await run_calibration(settings, sampler, backlight, repo, stop)

        await run_daemon(settings, sampler, backlight, repo, stop)

    except ActuatorUnreadable as e:
        logger.error("Backlight unreadable: %s", e)
        return EXIT_CALIBRATION if args.calibrate else EXIT_FATAL
    except CalibrationInterrupted as e:
        logger.warning("%s", e)
        return EXIT_CALIBRATION
    except CalibrationError as e:
        logger.error("Calibration failed: %s", e)
        return EXIT_CALIBRATION
    except SamplerError as e:
        logger.error("Camera unusable, giving up: %s", e)
        return EXIT_FATAL
    except ActuatorWriteFailed as e:
        logger.error("Backlight unwritable, giving up: %s", e)
        return EXIT_FATAL
    finally:
        _remove_signal_handlers()
        if sampler is not None:
            await sampler.close()

    logger.info("backlightd stopped")
    return EXIT_OK


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Adjust the display backlight to ambient light seen by a webcam")
    p.add_argument("--calibrate", action="store_true",
                   help="Measure camera sensitivity and backlight range, save them and exit")
    p.add_argument("--config", default=None,
                   help="Config file to use instead of the default search path")
    p.add_argument("--simulate", action="store_true",
                   help="Use a simulated camera and backlight")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return p.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    sys.exit(asyncio.run(amain(args)))


if __name__ == "__main__":
    main()
